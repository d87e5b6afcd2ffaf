from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from .. import schemas
from ..database import get_db
from ..request_context import capture_request_context
from ..services import documents
from ..services.document_fields import document_field_store
from ..services.signing import signing_engine

router = APIRouter()

@router.post("/batch-sign", response_model=schemas.BatchSignResponse)
def batch_sign(submission: schemas.BatchSignRequest, request: Request, db: Session = Depends(get_db)):
    context = capture_request_context(request)
    result = signing_engine.batch_sign(db, submission.document_id, submission.contact_id, context)

    if result.signed_fields_count:
        documents.sync_status(db, document_field_store.get_document(db, submission.document_id))

    return schemas.BatchSignResponse(
        success=result.success,
        message=result.message,
        signed_fields_count=result.signed_fields_count,
        footprint_id=result.footprint_id,
    )

@router.post("/reset", response_model=schemas.ResetResponse)
def reset_signatures(submission: schemas.ResetRequest, request: Request, db: Session = Depends(get_db)):
    context = capture_request_context(request)
    result = signing_engine.reset(db, submission.document_id, submission.contact_id, context, submission.reason)
    documents.sync_status(db, document_field_store.get_document(db, submission.document_id))
    return schemas.ResetResponse(reset_fields_count=result.reset_fields_count, footprint_id=result.footprint_id)
