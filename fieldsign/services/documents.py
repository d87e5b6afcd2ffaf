"""Document lifecycle glue around the signing engine.

The engine never touches document status. These helpers create documents
(instantiating template fields) and move status after the engine reports a
state change.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..errors import FieldSignError, PersistenceError
from .document_fields import document_field_store
from .signing import signing_engine
from .template_fields import template_field_store

logger = logging.getLogger(__name__)


def create_document(
    db: Session,
    title: str,
    template_id: Optional[int] = None,
    assignments: Optional[Mapping[int, str]] = None,
) -> models.Document:
    template_fields = []
    if template_id is not None:
        template_fields = template_field_store.list_fields(db, template_id)

    document = models.Document(title=title, template_id=template_id, status=models.DocumentStatus.PENDING.value)
    db.add(document)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Could not create document") from exc
    db.refresh(document)

    if template_fields:
        try:
            document_field_store.instantiate_from_template(db, document.id, template_fields, assignments)
        except FieldSignError:
            # A document without its fields must not linger
            db.delete(document)
            db.commit()
            raise
    logger.info("Document %s created from template %s", document.id, template_id)
    return document


def sync_status(db: Session, document: models.Document) -> models.Document:
    """Move a document between pending, in_progress and completed."""
    if document.status not in {s.value for s in models.ACTIVE_STATUSES} | {models.DocumentStatus.COMPLETED.value}:
        return document

    summary = signing_engine.completion_summary(db, document.id)
    any_signed = (
        db.query(models.DocumentField.id)
        .filter(
            models.DocumentField.document_id == document.id,
            models.DocumentField.is_signed == True,  # noqa: E712
        )
        .first()
        is not None
    )
    if summary.complete and any_signed:
        status = models.DocumentStatus.COMPLETED
    elif any_signed:
        status = models.DocumentStatus.IN_PROGRESS
    else:
        status = models.DocumentStatus.PENDING

    if document.status != status.value:
        logger.info("Document %s status %s -> %s", document.id, document.status, status.value)
        document.status = status.value
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(f"Could not update status of document {document.id}") from exc
        db.refresh(document)
    return document
