"""Field Instance Store: per-document snapshots of field definitions.

A document field copies type, position, size, required flag and metadata
from its template field when the document is created, so later template
edits never move fields on documents that already exist.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .. import models
from ..errors import ConflictError, FieldSignError, NotFoundError, PersistenceError, ValidationError
from .template_fields import as_field_dict, normalize_field_values

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def _snapshot(template_field: models.TemplateField) -> dict[str, Any]:
    return {
        "field_type": template_field.field_type,
        "field_name": template_field.field_name,
        "placeholder": template_field.placeholder,
        "page": template_field.page,
        "x_position": template_field.x_position,
        "y_position": template_field.y_position,
        "width": template_field.width,
        "height": template_field.height,
        "required": template_field.required,
        "metadata": dict(template_field.field_metadata or {}),
    }


def _check_value(field: models.DocumentField, value) -> None:
    if value is None:
        return
    if field.field_type == models.FieldType.CHECKBOX.value:
        if not isinstance(value, bool):
            raise ValidationError(
                "checkbox value must be true or false", field_id=field.id, field_name=field.field_name
            )
    elif not isinstance(value, str):
        raise ValidationError(
            f"{field.field_type} value must be a string", field_id=field.id, field_name=field.field_name
        )


class DocumentFieldStore:
    """Stateless document field operations; the Session is passed per call."""

    def get_document(self, db: Session, document_id: int) -> models.Document:
        document = db.get(models.Document, document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        return document

    def get_field(self, db: Session, document_field_id: int) -> models.DocumentField:
        field = db.get(models.DocumentField, document_field_id)
        if field is None:
            raise NotFoundError(f"Document field {document_field_id} not found", field_id=document_field_id)
        return field

    def list_fields(
        self, db: Session, document_id: int, contact_id: Optional[str] = None
    ) -> list[models.DocumentField]:
        self.get_document(db, document_id)
        query = db.query(models.DocumentField).filter(models.DocumentField.document_id == document_id)
        if contact_id is not None:
            query = query.filter(models.DocumentField.contact_id == contact_id)
        return query.order_by(models.DocumentField.id).all()

    def instantiate_from_template(
        self,
        db: Session,
        document_id: int,
        template_fields: Iterable[models.TemplateField],
        assignments: Optional[Mapping[int, str]] = None,
    ) -> list[models.DocumentField]:
        """Snapshot every template field onto the document, all or nothing."""
        self.get_document(db, document_id)
        assignments = dict(assignments or {})
        created: list[models.DocumentField] = []
        try:
            self._lock_unsigned_layout(db, document_id)
            for template_field in template_fields:
                values = normalize_field_values(_snapshot(template_field), field_id=template_field.id)
                field = self._build(document_id, values)
                field.field_id = template_field.id
                field.contact_id = assignments.get(template_field.id)
                db.add(field)
                db.flush()
                created.append(field)
            db.commit()
        except FieldSignError:
            db.rollback()
            logger.warning("Instantiation rejected for document %s; nothing persisted", document_id)
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Instantiation failed for document %s after %d fields", document_id, len(created))
            raise PersistenceError(f"Could not instantiate fields for document {document_id}") from exc

        for field in created:
            db.refresh(field)
        logger.info("Document %s instantiated with %d fields", document_id, len(created))
        return created

    def create_field(self, db: Session, document_id: int, spec) -> models.DocumentField:
        """Add one field to an ad hoc document (no template origin)."""
        self.get_document(db, document_id)
        data = as_field_dict(spec)
        try:
            self._lock_unsigned_layout(db, document_id)
            field = self._build(document_id, normalize_field_values(data))
            self._fill_optional(field, data)
        except FieldSignError:
            db.rollback()
            raise
        db.add(field)
        self._commit(db, "create document field")
        db.refresh(field)
        return field

    def assign_signer(self, db: Session, document_field_id: int, contact_id: Optional[str]) -> models.DocumentField:
        field = self.get_field(db, document_field_id)
        if field.is_signed:
            raise ConflictError(
                f"Field {field.id} is already signed and cannot be reassigned; reset it first",
                field_id=field.id,
            )
        field.contact_id = contact_id
        self._commit(db, "assign signer")
        db.refresh(field)
        logger.info("Field %s assigned to contact %s", field.id, contact_id)
        return field

    def set_value(
        self,
        db: Session,
        document_field_id: int,
        value=_UNSET,
        file_id=_UNSET,
    ) -> models.DocumentField:
        field = self.get_field(db, document_field_id)
        if field.is_signed:
            raise ConflictError(f"Field {field.id} is already signed; its value is final", field_id=field.id)
        if value is not _UNSET:
            _check_value(field, value)
        if file_id not in (_UNSET, None) and field.field_type != models.FieldType.SIGNATURE.value:
            raise ValidationError(
                "only signature fields take a file_id", field_id=field.id, field_name=field.field_name
            )
        if value is not _UNSET:
            field.value = value
        if file_id is not _UNSET:
            field.file_id = file_id
        self._commit(db, "set field value")
        db.refresh(field)
        return field

    def remove_all_for_document(self, db: Session, document_id: int) -> int:
        self.get_document(db, document_id)
        removed = self._remove_all(db, document_id)
        self._commit(db, "remove document fields")
        logger.info("Removed %d fields from document %s", removed, document_id)
        return removed

    def replace_layout(self, db: Session, document_id: int, specs: Iterable[Any]) -> list[models.DocumentField]:
        """Swap the whole field layout of a document that has no signatures yet."""
        self.get_document(db, document_id)
        created: list[models.DocumentField] = []
        try:
            self._remove_all(db, document_id)
            for spec in specs:
                data = as_field_dict(spec)
                field = self._build(document_id, normalize_field_values(data))
                self._fill_optional(field, data)
                field.field_id = data.get("field_id")
                db.add(field)
                created.append(field)
        except FieldSignError:
            db.rollback()
            raise
        self._commit(db, "replace document layout")
        for field in created:
            db.refresh(field)
        return created

    def _remove_all(self, db: Session, document_id: int) -> int:
        fields = self._lock_unsigned_layout(db, document_id)
        for field in fields:
            db.delete(field)
        return len(fields)

    def _lock_unsigned_layout(self, db: Session, document_id: int) -> list[models.DocumentField]:
        """Lock the document's fields; ConflictError once any of them is signed."""
        fields = (
            db.query(models.DocumentField)
            .filter(models.DocumentField.document_id == document_id)
            .with_for_update()
            .all()
        )
        signed = [f.id for f in fields if f.is_signed]
        if signed:
            raise ConflictError(
                f"Document {document_id} already has signed content (fields {signed}); "
                "its layout can no longer be edited",
                field_id=signed[0],
            )
        return fields

    def _build(self, document_id: int, values: Mapping[str, Any]) -> models.DocumentField:
        return models.DocumentField(
            document_id=document_id,
            field_type=values["field_type"],
            field_name=values.get("field_name") or "",
            placeholder=values.get("placeholder") or "",
            page=values.get("page", 1),
            x_position=values["x_position"],
            y_position=values["y_position"],
            width=values["width"],
            height=values["height"],
            required=bool(values.get("required", False)),
            field_metadata=values["metadata"],
            is_signed=False,
        )

    def _fill_optional(self, field: models.DocumentField, data: Mapping[str, Any]) -> None:
        value = data.get("value")
        _check_value(field, value)
        field.value = value
        field.file_id = data.get("file_id")
        field.contact_id = data.get("contact_id")

    def _commit(self, db: Session, action: str) -> None:
        try:
            db.commit()
        except StaleDataError as exc:
            db.rollback()
            raise ConflictError(f"Could not {action}: the field was modified concurrently") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Failed to %s", action)
            raise PersistenceError(f"Could not {action}: {exc.__class__.__name__}") from exc


# Module-level singleton
document_field_store = DocumentFieldStore()
