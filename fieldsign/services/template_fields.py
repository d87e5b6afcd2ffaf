"""Field Definition Store: reusable, positioned fields scoped to a template."""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..config import settings
from ..errors import ConflictError, FieldSignError, NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)


def validate_placement(values: Mapping[str, Any], field_id: int | None = None, field_name: str | None = None) -> None:
    """Reject coordinates that are negative, not finite, or fall outside the page."""
    bound = settings.page_bound

    def fail(reason: str) -> None:
        raise ValidationError(reason, field_id=field_id, field_name=field_name)

    page = values.get("page", 1)
    if not isinstance(page, int) or page < 1:
        fail(f"page must be a positive integer, got {page!r}")

    for key in ("x_position", "y_position", "width", "height"):
        value = values.get(key)
        if value is None:
            fail(f"{key} is required")
        if not math.isfinite(value):
            fail(f"{key} must be a finite number, got {value}")
        if value < 0:
            fail(f"{key} must be non-negative, got {value}")
    if values["width"] == 0 or values["height"] == 0:
        fail("width and height must be greater than zero")
    if values["x_position"] + values["width"] > bound:
        fail(f"field extends past the right page edge (x + width > {bound})")
    if values["y_position"] + values["height"] > bound:
        fail(f"field extends past the bottom page edge (y + height > {bound})")


def normalize_field_values(raw: Mapping[str, Any], field_id: int | None = None) -> dict[str, Any]:
    """Validate a complete field definition and return column values."""
    values = dict(raw)
    field_type = schemas.parse_field_type(values.get("field_type"))
    values["field_type"] = field_type.value
    validate_placement(values, field_id=field_id, field_name=values.get("field_name"))
    try:
        values["metadata"] = schemas.parse_metadata(field_type, values.get("metadata"))
    except ValidationError as exc:
        raise ValidationError(exc.reason, field_id=field_id, field_name=values.get("field_name")) from None
    return values


def _column_values(values: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "field_type": values["field_type"],
        "field_name": values.get("field_name") or "",
        "placeholder": values.get("placeholder") or "",
        "page": values.get("page", 1),
        "x_position": values["x_position"],
        "y_position": values["y_position"],
        "width": values["width"],
        "height": values["height"],
        "required": bool(values.get("required", False)),
        "field_metadata": values["metadata"],
    }


def as_field_dict(spec) -> dict[str, Any]:
    if hasattr(spec, "model_dump"):
        return spec.model_dump(exclude_unset=False)
    return dict(spec)


class TemplateFieldStore:
    def get_template(self, db: Session, template_id: int) -> models.Template:
        template = db.get(models.Template, template_id)
        if template is None:
            raise NotFoundError(f"Template {template_id} not found")
        return template

    def get_field(self, db: Session, field_id: int) -> models.TemplateField:
        field = db.get(models.TemplateField, field_id)
        if field is None:
            raise NotFoundError(f"Template field {field_id} not found", field_id=field_id)
        return field

    def list_fields(self, db: Session, template_id: int) -> list[models.TemplateField]:
        self.get_template(db, template_id)
        return (
            db.query(models.TemplateField)
            .filter(models.TemplateField.template_id == template_id)
            .order_by(models.TemplateField.id)
            .all()
        )

    def create_field(self, db: Session, template_id: int, spec) -> models.TemplateField:
        self.get_template(db, template_id)
        values = normalize_field_values(as_field_dict(spec))
        field = models.TemplateField(template_id=template_id, **_column_values(values))
        db.add(field)
        self._commit(db, "create template field")
        db.refresh(field)
        logger.info("Template field created: template=%s field=%s type=%s", template_id, field.id, field.field_type)
        return field

    def update_field(self, db: Session, field_id: int, patch) -> models.TemplateField:
        field = self.get_field(db, field_id)
        self._apply_patch(field, patch)
        self._commit(db, "update template field")
        db.refresh(field)
        return field

    def delete_field(self, db: Session, field_id: int) -> None:
        """Delete a template field.

        Existing document snapshots are never touched. Deletion is refused
        while a document that can still be signed was instantiated from it.
        """
        field = self.get_field(db, field_id)
        self._ensure_unreferenced(db, field)
        db.delete(field)
        self._commit(db, "delete template field")
        logger.info("Template field deleted: template=%s field=%s", field.template_id, field_id)

    def apply_layout(
        self,
        db: Session,
        template_id: int,
        specs: Iterable[tuple[int | None, Any]],
        removed_ids: Iterable[int] = (),
    ) -> list[models.TemplateField]:
        """Create, update and delete fields of one template in one transaction.

        ``specs`` yields ``(existing_id, spec)`` pairs; ``existing_id`` is None
        for fields that do not exist yet.
        """
        self.get_template(db, template_id)
        saved: list[models.TemplateField] = []
        try:
            for field_id in removed_ids:
                field = self.get_field(db, field_id)
                self._ensure_same_template(field, template_id)
                self._ensure_unreferenced(db, field)
                db.delete(field)
            for existing_id, spec in specs:
                if existing_id is None:
                    values = normalize_field_values(as_field_dict(spec))
                    field = models.TemplateField(template_id=template_id, **_column_values(values))
                    db.add(field)
                else:
                    field = self.get_field(db, existing_id)
                    self._ensure_same_template(field, template_id)
                    self._apply_patch(field, spec)
                saved.append(field)
        except FieldSignError:
            db.rollback()
            raise
        self._commit(db, "apply template layout")
        for field in saved:
            db.refresh(field)
        logger.info("Template layout saved: template=%s fields=%d", template_id, len(saved))
        return saved

    def _apply_patch(self, field: models.TemplateField, patch) -> None:
        if hasattr(patch, "model_dump"):
            changes = patch.model_dump(exclude_unset=True)
        else:
            changes = dict(patch)
        current = {
            "field_type": field.field_type,
            "field_name": field.field_name,
            "placeholder": field.placeholder,
            "page": field.page,
            "x_position": field.x_position,
            "y_position": field.y_position,
            "width": field.width,
            "height": field.height,
            "required": field.required,
            "metadata": field.field_metadata,
        }
        if "field_type" in changes and "metadata" not in changes:
            # Metadata of the old type does not carry over to a new type
            if schemas.parse_field_type(changes["field_type"]).value != field.field_type:
                current["metadata"] = {}
        merged = {**current, **{k: v for k, v in changes.items() if v is not None or k == "metadata"}}
        values = normalize_field_values(merged, field_id=field.id)
        for key, value in _column_values(values).items():
            setattr(field, key, value)

    def _ensure_same_template(self, field: models.TemplateField, template_id: int) -> None:
        if field.template_id != template_id:
            raise ConflictError(
                f"Template field {field.id} belongs to template {field.template_id}, not {template_id}",
                field_id=field.id,
            )

    def _ensure_unreferenced(self, db: Session, field: models.TemplateField) -> None:
        in_use = (
            db.query(models.DocumentField.document_id)
            .join(models.Document, models.Document.id == models.DocumentField.document_id)
            .filter(
                models.DocumentField.field_id == field.id,
                models.Document.status.in_([s.value for s in models.ACTIVE_STATUSES]),
            )
            .first()
        )
        if in_use is not None:
            raise ConflictError(
                f"Template field {field.id} is still used by active document {in_use.document_id}",
                field_id=field.id,
            )

    def _commit(self, db: Session, action: str) -> None:
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Failed to %s", action)
            raise PersistenceError(f"Could not {action}: {exc.__class__.__name__}") from exc


# Module-level singleton
template_field_store = TemplateFieldStore()
