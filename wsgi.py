"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi normalize-statuses
    flask --app wsgi run --with-threads
"""

from app import create_app

app = create_app()
