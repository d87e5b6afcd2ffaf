"""Audit Footprint Recorder: evidentiary record of every signing action.

Footprints are append-only. ``record`` only flushes: it joins the caller's
transaction so a signature and its footprint commit or roll back together.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..errors import NotFoundError, PersistenceError
from ..schemas import RequestContext

logger = logging.getLogger(__name__)


class FootprintRecorder:
    """Writes and reads footprints inside the caller's session."""

    def record(
        self,
        db: Session,
        document_id: int,
        contact_id: str,
        context: RequestContext,
        action: models.FootprintAction = models.FootprintAction.SIGNED,
        field_ids: Iterable[int] = (),
        reason: Optional[str] = None,
    ) -> models.SignatureFootprint:
        footprint = models.SignatureFootprint(
            document_id=document_id,
            contact_id=contact_id,
            action=action.value,
            field_ids=list(field_ids),
            ip_address=context.ip_address,
            forwarded_ip=context.forwarded_ip,
            real_ip=context.real_ip,
            user_agent=context.user_agent,
            # Headers that were not sent stay absent; empty strings are kept
            request_headers=context.headers.model_dump(exclude_none=True),
            request_info=context.request_info.model_dump(),
            reason=reason,
        )
        try:
            db.add(footprint)
            db.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "Failed to record %s footprint: document=%s contact=%s",
                action.value,
                document_id,
                contact_id,
            )
            raise PersistenceError(f"Could not record signature footprint for document {document_id}") from exc

        logger.info(
            "Footprint %s recorded: action=%s document=%s contact=%s ip=%s fields=%s",
            footprint.id,
            action.value,
            document_id,
            contact_id,
            context.ip_address,
            footprint.field_ids,
        )
        return footprint

    def get(self, db: Session, footprint_id: int) -> models.SignatureFootprint:
        footprint = db.get(models.SignatureFootprint, footprint_id)
        if footprint is None:
            raise NotFoundError(f"Signature footprint {footprint_id} not found")
        return footprint

    def list_for_document(
        self, db: Session, document_id: int, contact_id: Optional[str] = None
    ) -> list[models.SignatureFootprint]:
        query = db.query(models.SignatureFootprint).filter(models.SignatureFootprint.document_id == document_id)
        if contact_id is not None:
            query = query.filter(models.SignatureFootprint.contact_id == contact_id)
        return query.order_by(models.SignatureFootprint.id).all()

    def annotate(self, db: Session, footprint_id: int, note: str) -> models.SignatureFootprint:
        """Attach a correction note; the only mutation a footprint accepts."""
        footprint = self.get(db, footprint_id)
        footprint.correction_note = note
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(f"Could not annotate footprint {footprint_id}") from exc
        db.refresh(footprint)
        logger.warning("Footprint %s annotated with a correction note", footprint_id)
        return footprint


# Module-level singleton
footprint_recorder = FootprintRecorder()
