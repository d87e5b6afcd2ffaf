"""Signing State Engine.

Per field: unassigned -> assigned -> signed. ``signed`` is terminal except
through ``reset``, which records its own footprint.

Batch sign runs in a single transaction: load the contact's unsigned fields,
validate them, record one footprint, then flip ``is_signed`` with a
compare-and-set update. The engine is the only writer of ``is_signed``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..errors import ConflictError, FieldSignError, PersistenceError, ValidationError
from ..schemas import RequestContext
from .document_fields import document_field_store
from .footprints import footprint_recorder

logger = logging.getLogger(__name__)

CLOSED_STATUSES = frozenset({models.DocumentStatus.REJECTED.value, models.DocumentStatus.ARCHIVED.value})


@dataclass
class BatchSignResult:
    """Outcome of one batch-sign call. A count of 0 is a successful no-op."""

    success: bool = True
    signed_fields_count: int = 0
    message: str = ""
    footprint_id: Optional[int] = None
    field_ids: list[int] = field(default_factory=list)


@dataclass
class ResetResult:
    reset_fields_count: int
    footprint_id: int
    field_ids: list[int] = field(default_factory=list)


@dataclass
class CompletionSummary:
    document_id: int
    required_count: int = 0
    signed_required_count: int = 0
    pending_field_ids: list[int] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.pending_field_ids


class SigningEngine:
    """Stateless signing operations; the Session is passed per call."""

    def batch_sign(
        self,
        db: Session,
        document_id: int,
        contact_id: str,
        context: RequestContext,
    ) -> BatchSignResult:
        """Sign every pending field of ``contact_id`` on the document at once.

        Optional fields left empty stay unsigned. A required field without
        input aborts the whole batch with a ValidationError naming it.
        Re-submitting after everything is signed returns a count of 0 and
        records no footprint.
        """
        document = document_field_store.get_document(db, document_id)
        if document.status in CLOSED_STATUSES:
            raise ConflictError(f"Document {document_id} is {document.status} and cannot be signed")

        try:
            pending = self._load_pending(db, document_id, contact_id)
            ready = [f for f in pending if f.has_input]
            missing = [f for f in pending if f.required and not f.has_input]
            if missing:
                first = missing[0]
                reason = "a signature is required" if first.field_type == models.FieldType.SIGNATURE.value else "a value is required"
                if len(missing) > 1:
                    reason += f" ({len(missing) - 1} more required field(s) are also incomplete)"
                raise ValidationError(reason, field_id=first.id, field_name=first.field_name)

            if not ready:
                db.rollback()
                logger.info("Batch sign no-op: document=%s contact=%s", document_id, contact_id)
                return BatchSignResult(message="No pending fields to sign")

            field_ids = [f.id for f in ready]
            footprint = footprint_recorder.record(
                db, document_id, contact_id, context, field_ids=field_ids
            )
            footprint_id = footprint.id
            result = db.execute(
                update(models.DocumentField)
                .where(
                    models.DocumentField.id.in_(field_ids),
                    models.DocumentField.is_signed == False,  # noqa: E712
                )
                .values(
                    is_signed=True,
                    signed_at=datetime.now(timezone.utc),
                    footprint_id=footprint_id,
                    version=models.DocumentField.version + 1,
                )
                .execution_options(synchronize_session=False)
            )

            if result.rowcount == 0:
                # A concurrent call signed these fields first; drop our footprint
                db.rollback()
                logger.info(
                    "Batch sign lost race, fields already signed: document=%s contact=%s",
                    document_id,
                    contact_id,
                )
                return BatchSignResult(message="No pending fields to sign")
            if result.rowcount != len(field_ids):
                db.rollback()
                raise ConflictError(
                    f"Fields of document {document_id} changed while signing; nothing was signed, retry the request"
                )
            db.commit()
        except FieldSignError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Batch sign failed: document=%s contact=%s", document_id, contact_id)
            raise PersistenceError(f"Could not sign fields of document {document_id}") from exc

        logger.info(
            "Batch sign: document=%s contact=%s fields=%s footprint=%s",
            document_id,
            contact_id,
            field_ids,
            footprint_id,
        )
        return BatchSignResult(
            signed_fields_count=len(field_ids),
            message=f"{len(field_ids)} field(s) signed",
            footprint_id=footprint_id,
            field_ids=field_ids,
        )

    def reset(
        self,
        db: Session,
        document_id: int,
        contact_id: str,
        context: RequestContext,
        reason: str,
    ) -> ResetResult:
        """Return the contact's signed fields to ``assigned``.

        The reset is evidenced by its own footprint; earlier signing
        footprints are kept.
        """
        if not reason or not reason.strip():
            raise ValidationError("a reason is required to reset signed fields")
        document_field_store.get_document(db, document_id)

        try:
            signed = (
                db.query(models.DocumentField)
                .filter(
                    models.DocumentField.document_id == document_id,
                    models.DocumentField.contact_id == contact_id,
                    models.DocumentField.is_signed == True,  # noqa: E712
                )
                .order_by(models.DocumentField.id)
                .with_for_update()
                .all()
            )
            if not signed:
                raise ConflictError(f"Contact {contact_id} has no signed fields on document {document_id}")

            field_ids = [f.id for f in signed]
            footprint = footprint_recorder.record(
                db,
                document_id,
                contact_id,
                context,
                action=models.FootprintAction.RESET,
                field_ids=field_ids,
                reason=reason.strip(),
            )
            footprint_id = footprint.id
            result = db.execute(
                update(models.DocumentField)
                .where(
                    models.DocumentField.id.in_(field_ids),
                    models.DocumentField.is_signed == True,  # noqa: E712
                )
                .values(
                    is_signed=False,
                    signed_at=None,
                    footprint_id=None,
                    version=models.DocumentField.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != len(field_ids):
                db.rollback()
                raise ConflictError(f"Fields of document {document_id} changed during reset; nothing was reset")
            db.commit()
        except FieldSignError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Reset failed: document=%s contact=%s", document_id, contact_id)
            raise PersistenceError(f"Could not reset fields of document {document_id}") from exc

        logger.warning(
            "Signed fields reset: document=%s contact=%s fields=%s footprint=%s",
            document_id,
            contact_id,
            field_ids,
            footprint_id,
        )
        return ResetResult(reset_fields_count=len(field_ids), footprint_id=footprint_id, field_ids=field_ids)

    def completion_summary(self, db: Session, document_id: int) -> CompletionSummary:
        document_field_store.get_document(db, document_id)
        rows = (
            db.query(models.DocumentField.id, models.DocumentField.is_signed)
            .filter(
                models.DocumentField.document_id == document_id,
                models.DocumentField.required == True,  # noqa: E712
            )
            .order_by(models.DocumentField.id)
            .all()
        )
        return CompletionSummary(
            document_id=document_id,
            required_count=len(rows),
            signed_required_count=sum(1 for row in rows if row.is_signed),
            pending_field_ids=[row.id for row in rows if not row.is_signed],
        )

    def is_document_complete(self, db: Session, document_id: int) -> bool:
        """True when every required field of the document is signed."""
        return self.completion_summary(db, document_id).complete

    def _load_pending(self, db: Session, document_id: int, contact_id: str) -> list[models.DocumentField]:
        return (
            db.query(models.DocumentField)
            .filter(
                models.DocumentField.document_id == document_id,
                models.DocumentField.contact_id == contact_id,
                models.DocumentField.is_signed == False,  # noqa: E712
            )
            .order_by(models.DocumentField.id)
            .with_for_update()
            .all()
        )


# Module-level singleton
signing_engine = SigningEngine()
