"""
Client Blueprint — customer registry.

  GET    /api/v1/clients                           — paginated list (search, page, page_size)
  GET    /api/v1/clients/search?q=                 — top 10 matches
  GET    /api/v1/clients/customer/<customer_number>
  GET    /api/v1/clients/<id>
  POST   /api/v1/clients
  PUT    /api/v1/clients/<id>
  DELETE /api/v1/clients/<id>
"""

from flask import Blueprint, jsonify, request

from app.blueprints import paginate_query, register_error_handlers
from app.services import client_service

client_bp = Blueprint("client_bp", __name__, url_prefix="/api/v1/clients")
register_error_handlers(client_bp)


@client_bp.route("", methods=["GET"])
def list_clients():
    query = client_service.clients_query(request.args.get("search"))
    return jsonify(paginate_query(query)), 200


@client_bp.route("/search", methods=["GET"])
def search_clients():
    clients = client_service.search_clients(request.args.get("q", ""))
    return jsonify([c.to_dict() for c in clients]), 200


@client_bp.route("/customer/<customer_number>", methods=["GET"])
def get_by_customer_number(customer_number):
    client = client_service.get_client_by_number(customer_number)
    return jsonify(client.to_dict()), 200


@client_bp.route("/<client_id>", methods=["GET"])
def get_client(client_id):
    return jsonify(client_service.get_client(client_id).to_dict()), 200


@client_bp.route("", methods=["POST"])
def create_client():
    data = request.get_json(silent=True) or {}
    client = client_service.create_client(data)
    return jsonify(client.to_dict()), 201


@client_bp.route("/<client_id>", methods=["PUT"])
def update_client(client_id):
    data = request.get_json(silent=True) or {}
    client = client_service.update_client(client_id, data)
    return jsonify(client.to_dict()), 200


@client_bp.route("/<client_id>", methods=["DELETE"])
def delete_client(client_id):
    client_service.delete_client(client_id)
    return "", 204
