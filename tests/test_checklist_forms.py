"""
Document-category and site-visit form parsing.
"""

import pytest

from app.core.exceptions import ValidationError
from app.models.checklist import canonical_status, validate_report_transition
from app.services.checklist_forms import (
    PHOTO_SLOTS_PER_SECTION,
    SiteVisitForm,
    parse_documents,
    parse_site_visit_form,
)


class TestDocuments:
    def test_none_is_empty(self):
        assert parse_documents(None) == []

    def test_item_defaults(self):
        docs = parse_documents([{"category": "Technical", "doc_list": [{"name": "BQ", "comment": "v2"}]}])
        assert docs[0]["doc_list"][0] == {"name": "BQ", "status": "pendingrm", "action": None, "comment": "v2"}

    def test_snake_case_wins_over_camel(self):
        docs = parse_documents([{
            "category": "Legal",
            "doc_list": [{"name": "Deed"}],
            "docList": [{"name": "Ignored"}],
        }])
        assert [d["name"] for d in docs[0]["doc_list"]] == ["Deed"]

    @pytest.mark.parametrize("raw", [
        "not a list",
        [{"doc_list": []}],
        [{"category": "Legal", "doc_list": "x"}],
        [{"category": "Legal", "doc_list": [{"status": "ok"}]}],
        [{"category": "Legal", "doc_list": [{"name": ["nested"]}]}],
    ])
    def test_rejects_bad_shapes(self, raw):
        with pytest.raises(ValidationError):
            parse_documents(raw)


class TestSiteVisitForm:
    def test_none_stays_none(self):
        assert parse_site_visit_form(None) is None

    def test_empty_form_has_every_field(self):
        form = parse_site_visit_form({})
        assert set(form) == {f for f in SiteVisitForm.__dataclass_fields__}
        assert form["materials_on_site_photos"] == [""] * PHOTO_SLOTS_PER_SECTION
        assert form["documents_submitted"]["contractor_invoice"] == ""

    def test_numbers_are_kept_as_text(self):
        form = parse_site_visit_form({"bqAmount": 1500000, "drawdownKesAmount": 250000.5})
        assert form["bq_amount"] == "1500000"
        assert form["drawdown_kes_amount"] == "250000.5"

    def test_too_many_photos(self):
        with pytest.raises(ValidationError):
            parse_site_visit_form({"defects_noted_photos": ["a", "b", "c", "d", "e"]})

    def test_must_be_object(self):
        with pytest.raises(ValidationError):
            parse_site_visit_form(["not", "an", "object"])


class TestStatusVocabulary:
    @pytest.mark.parametrize("value, expected", [
        ("pending_qs_review", "pending_qs_review"),
        ("Submitted", "pending_qs_review"),
        ("InReview", "under_review"),
        ("Completed", "approved"),
        ("mystery", None),
        (None, None),
    ])
    def test_canonical_status(self, value, expected):
        assert canonical_status(value) == expected

    def test_transitions(self):
        assert validate_report_transition("pending", "pending_qs_review")
        assert validate_report_transition("revision_requested", "pending_qs_review")
        assert not validate_report_transition("approved", "draft")
        assert not validate_report_transition("pending", "approved")
