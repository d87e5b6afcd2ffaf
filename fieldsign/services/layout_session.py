"""Field Layout Session: in-memory authoring state for one template or document.

An author places, moves, resizes and removes fields locally; ``commit`` then
writes the whole layout in one call. Sessions are plain objects owned by the
caller, so two sessions never share state.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Optional

from sqlalchemy.orm import Session

from .. import models
from ..errors import NotFoundError, ValidationError
from ..schemas import parse_field_type
from .document_fields import document_field_store
from .template_fields import template_field_store

logger = logging.getLogger(__name__)

# Placement defaults per field type, as fractions of the page
FIELD_DEFAULTS: dict[models.FieldType, dict[str, Any]] = {
    models.FieldType.SIGNATURE: {
        "x_position": 0.10, "y_position": 0.30, "width": 0.30, "height": 0.10,
        "field_name": "Signature", "required": True,
    },
    models.FieldType.TEXT: {
        "x_position": 0.10, "y_position": 0.20, "width": 0.30, "height": 0.036,
        "field_name": "Text Field", "placeholder": "Enter text here", "required": False,
    },
    models.FieldType.CHECKBOX: {
        "x_position": 0.10, "y_position": 0.15, "width": 0.032, "height": 0.032,
        "field_name": "Checkbox", "required": False,
    },
    models.FieldType.DATE: {
        "x_position": 0.05, "y_position": 0.05, "width": 0.15, "height": 0.036,
        "field_name": "Date Field", "required": False,
    },
}

EDITABLE = frozenset({
    "field_name", "placeholder", "page", "x_position", "y_position", "width", "height",
    "required", "metadata", "value", "file_id", "contact_id",
})


@dataclass
class LayoutField:
    temporary_id: str
    field_type: str
    page: int
    x_position: float
    y_position: float
    width: float
    height: float
    field_name: str = ""
    placeholder: str = ""
    required: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)
    # Id of the stored field this entry edits (template field id in both modes)
    origin_id: Optional[int] = None
    value: Any = None
    file_id: Optional[str] = None
    contact_id: Optional[str] = None

    @property
    def key(self) -> str:
        return str(self.origin_id) if self.origin_id is not None else self.temporary_id

    def to_spec(self) -> dict[str, Any]:
        spec = asdict(self)
        spec.pop("temporary_id")
        spec["field_id"] = spec.pop("origin_id")
        return spec


def _stored_attrs(stored) -> dict[str, Any]:
    return {
        "page": stored.page,
        "field_name": stored.field_name,
        "placeholder": stored.placeholder,
        "x_position": stored.x_position,
        "y_position": stored.y_position,
        "width": stored.width,
        "height": stored.height,
        "required": stored.required,
        "metadata": dict(stored.field_metadata or {}),
    }


class FieldLayoutSession:
    """Working list of fields for one template (template mode) or one document."""

    def __init__(self, target_id: int, template_mode: bool) -> None:
        self.target_id = target_id
        self._template_mode = template_mode
        self._fields: list[LayoutField] = []
        self._removed_origin_ids: list[int] = []

    @property
    def is_template_mode(self) -> bool:
        return self._template_mode

    @property
    def fields(self) -> list[LayoutField]:
        return list(self._fields)

    def fields_for_page(self, page: int) -> list[LayoutField]:
        return [f for f in self._fields if f.page == page]

    def get_field(self, key: str) -> LayoutField:
        for f in self._fields:
            if f.key == str(key) or f.temporary_id == key:
                return f
        raise NotFoundError(f"Field {key} is not part of this layout session")

    def add_field(self, field_type, page: int = 1, origin_id: Optional[int] = None, **overrides) -> LayoutField:
        """Place a field, filling unspecified attributes from the type defaults.

        Adding a field whose origin id is already in the session is a no-op
        that returns the existing entry.
        """
        kind = parse_field_type(field_type)
        page = overrides.pop("page", page)
        if origin_id is not None:
            for existing in self._fields:
                if existing.origin_id == origin_id:
                    logger.warning("Duplicate field %s in layout session, skipping", origin_id)
                    return existing

        unknown = set(overrides) - EDITABLE
        if unknown:
            raise ValidationError(f"unknown field attributes: {', '.join(sorted(unknown))}")

        attrs = dict(FIELD_DEFAULTS[kind])
        attrs.update(overrides)
        if self._template_mode:
            attrs["value"] = None
            attrs["file_id"] = None
            attrs["contact_id"] = None
        elif kind is models.FieldType.DATE and attrs.get("value") is None:
            attrs["value"] = date.today().strftime(
                (attrs.get("metadata") or {}).get("date_format", "%m/%d/%Y")
            )

        entry = LayoutField(
            temporary_id=uuid.uuid4().hex,
            field_type=kind.value,
            page=page,
            origin_id=origin_id,
            **attrs,
        )
        self._fields.append(entry)
        return entry

    def update_field(self, key: str, **patch) -> LayoutField:
        entry = self.get_field(key)
        unknown = set(patch) - EDITABLE
        if unknown:
            raise ValidationError(f"unknown field attributes: {', '.join(sorted(unknown))}")
        if self._template_mode:
            for name in ("value", "file_id", "contact_id"):
                patch.pop(name, None)
        for name, value in patch.items():
            setattr(entry, name, value)
        return entry

    def remove_field(self, key: str) -> None:
        entry = self.get_field(key)
        self._fields.remove(entry)
        if self._template_mode and entry.origin_id is not None:
            self._removed_origin_ids.append(entry.origin_id)

    def reset_fields(self) -> None:
        """Forget every local edit, e.g. when the author navigates away."""
        self._fields.clear()
        self._removed_origin_ids.clear()

    def load(self, db: Session) -> list[LayoutField]:
        """Seed the session with what is currently stored for the target."""
        self.reset_fields()
        if self._template_mode:
            for stored in template_field_store.list_fields(db, self.target_id):
                self.add_field(stored.field_type, origin_id=stored.id, **_stored_attrs(stored))
        else:
            for stored in document_field_store.list_fields(db, self.target_id):
                # Several document fields may share one origin, so no duplicate check here
                entry = self.add_field(stored.field_type, **_stored_attrs(stored))
                entry.origin_id = stored.field_id
                entry.value = stored.value
                entry.file_id = stored.file_id
                entry.contact_id = stored.contact_id
        return self.fields

    def commit(self, db: Session) -> list:
        """Write the layout to the template or document in one transaction."""
        specs = [f.to_spec() for f in self._fields]
        if self._template_mode:
            saved = template_field_store.apply_layout(
                db,
                self.target_id,
                [(spec.pop("field_id"), spec) for spec in specs],
                removed_ids=list(self._removed_origin_ids),
            )
            self._removed_origin_ids.clear()
            for entry, stored in zip(self._fields, saved):
                entry.origin_id = stored.id
        else:
            saved = document_field_store.replace_layout(db, self.target_id, specs)
        logger.info(
            "Layout committed: %s=%s fields=%d",
            "template" if self._template_mode else "document",
            self.target_id,
            len(saved),
        )
        return saved


def open_layout_session(template_id: Optional[int] = None, document_id: Optional[int] = None) -> FieldLayoutSession:
    if (template_id is None) == (document_id is None):
        raise ValueError("open_layout_session needs exactly one of template_id or document_id")
    if template_id is not None:
        return FieldLayoutSession(template_id, template_mode=True)
    return FieldLayoutSession(document_id, template_mode=False)
