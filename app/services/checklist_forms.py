"""
Checklist value types — document categories and the site-visit form.

These are stored as JSON on ``Checklist`` but validated on the way in so
the stored shape is always well-formed.  Keys are snake_case; the
camelCase spellings sent by the web client are accepted too.

Usage:
    from app.services.checklist_forms import parse_documents, SiteVisitForm

    documents = parse_documents(payload.get("documents"))
    form = SiteVisitForm.from_dict(payload["site_visit_form"])
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from typing import Any

from app.core.exceptions import ValidationError

DEFAULT_DOCUMENT_STATUS = "pendingrm"
PHOTO_SLOTS_PER_SECTION = 4

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _snake_keys(data: dict) -> dict:
    """Return a copy of ``data`` with camelCase keys converted to snake_case."""
    out = {}
    for key, value in data.items():
        if not isinstance(key, str):
            continue
        snake = _CAMEL_RE.sub("_", key).lower()
        # Explicit snake_case keys win over their camelCase twin
        if snake in out and key == snake:
            out[snake] = value
        else:
            out.setdefault(snake, value)
    return out


def _as_text(value: Any, name: str) -> str:
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string", details={name: "expected string"})
    return value


def _optional_text(value: Any, name: str) -> str | None:
    if value is None:
        return None
    return _as_text(value, name)


# ═════════════════════════════════════════════════════════════════════════════
# Document checklist
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class DocumentItem:
    """Single required document within a category."""
    name: str
    status: str = DEFAULT_DOCUMENT_STATUS
    action: str | None = None
    comment: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "DocumentItem":
        if not isinstance(data, dict):
            raise ValidationError("Document item must be an object")
        data = _snake_keys(data)
        name = _as_text(data.get("name"), "name").strip()
        if not name:
            raise ValidationError("Document name is required", details={"name": "required"})
        status = _as_text(data.get("status"), "status").strip() or DEFAULT_DOCUMENT_STATUS
        return cls(
            name=name,
            status=status,
            action=_optional_text(data.get("action"), "action"),
            comment=_optional_text(data.get("comment"), "comment"),
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status,
            "action": self.action,
            "comment": self.comment,
        }


@dataclass
class DocumentCategory:
    """Named group of document items (e.g. "Legal", "Technical")."""
    category: str
    doc_list: list[DocumentItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "DocumentCategory":
        if not isinstance(data, dict):
            raise ValidationError("Document category must be an object")
        data = _snake_keys(data)
        category = _as_text(data.get("category"), "category").strip()
        if not category:
            raise ValidationError("Document category is required", details={"category": "required"})
        raw_items = data.get("doc_list") or []
        if not isinstance(raw_items, list):
            raise ValidationError("doc_list must be a list", details={"doc_list": "expected list"})
        return cls(category=category, doc_list=[DocumentItem.from_dict(i) for i in raw_items])

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "doc_list": [item.to_dict() for item in self.doc_list],
        }


def parse_documents(raw: Any) -> list[dict]:
    """Validate a document-category list and return its canonical JSON form."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("documents must be a list", details={"documents": "expected list"})
    return [DocumentCategory.from_dict(c).to_dict() for c in raw]


# ═════════════════════════════════════════════════════════════════════════════
# Site-visit form
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class SubmittedDocuments:
    """Supporting documents attached to a drawdown request."""
    qs_valuation: str = ""
    interim_certificate: str = ""
    customer_instruction_letter: str = ""
    contractor_progress_report: str = ""
    contractor_invoice: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "SubmittedDocuments":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValidationError("documents_submitted must be an object")
        data = _snake_keys(data)
        return cls(**{f.name: _as_text(data.get(f.name), f.name) for f in fields(cls)})

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _photo_slots(value: Any, name: str) -> list[str]:
    if value is None:
        return [""] * PHOTO_SLOTS_PER_SECTION
    if not isinstance(value, list):
        raise ValidationError(f"{name} must be a list", details={name: "expected list"})
    if len(value) > PHOTO_SLOTS_PER_SECTION:
        raise ValidationError(
            f"{name} allows at most {PHOTO_SLOTS_PER_SECTION} photos",
            details={name: "too many slots"},
        )
    slots = [_as_text(v, name) for v in value]
    return slots + [""] * (PHOTO_SLOTS_PER_SECTION - len(slots))


_PHOTO_FIELDS = (
    "progress_photos_page3",
    "progress_photos_page4",
    "materials_on_site_photos",
    "defects_noted_photos",
)


@dataclass
class SiteVisitForm:
    """QS/RM site-visit call report."""
    call_report_no: str = ""
    customer_name: str = ""
    customer_type: str = ""
    site_visit_date_time: str = ""
    person_met_at_site: str = ""
    bq_amount: str = ""
    construction_loan_amount: str = ""
    customer_contribution: str = ""
    drawn_funds_d1: str = ""
    drawn_funds_d2: str = ""
    drawn_funds_subtotal: str = ""
    undrawn_funds_to_date: str = ""
    brief_profile: str = ""
    site_exact_location: str = ""
    house_located_along: str = ""
    site_pin: str = ""
    security_details: str = ""
    plot_lr_no: str = ""
    site_visit_objective1: str = ""
    site_visit_objective2: str = ""
    site_visit_objective3: str = ""
    works_complete: str = ""
    works_ongoing: str = ""
    materials_found_on_site: str = ""
    defects_noted_on_site: str = ""
    drawdown_request_no: str = ""
    drawdown_kes_amount: str = ""
    documents_submitted: SubmittedDocuments = field(default_factory=SubmittedDocuments)
    prepared_by: str = ""
    signature: str = ""
    prepared_date: str = ""
    progress_photos_page3: list[str] = field(default_factory=lambda: [""] * PHOTO_SLOTS_PER_SECTION)
    progress_photos_page4: list[str] = field(default_factory=lambda: [""] * PHOTO_SLOTS_PER_SECTION)
    materials_on_site_photos: list[str] = field(default_factory=lambda: [""] * PHOTO_SLOTS_PER_SECTION)
    defects_noted_photos: list[str] = field(default_factory=lambda: [""] * PHOTO_SLOTS_PER_SECTION)

    @classmethod
    def from_dict(cls, data: Any) -> "SiteVisitForm":
        if not isinstance(data, dict):
            raise ValidationError("site_visit_form must be an object")
        data = _snake_keys(data)
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            raw = data.get(f.name)
            if f.name == "documents_submitted":
                kwargs[f.name] = SubmittedDocuments.from_dict(raw)
            elif f.name in _PHOTO_FIELDS:
                kwargs[f.name] = _photo_slots(raw, f.name)
            else:
                kwargs[f.name] = _as_text(raw, f.name)
        return cls(**kwargs)

    def to_dict(self) -> dict:
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, SubmittedDocuments):
                value = value.to_dict()
            elif isinstance(value, list):
                value = list(value)
            out[f.name] = value
        return out


def parse_site_visit_form(raw: Any) -> dict | None:
    """Validate a site-visit form payload; ``None`` stays ``None``."""
    if raw is None:
        return None
    return SiteVisitForm.from_dict(raw).to_dict()
