from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from .. import schemas
from ..database import get_db
from ..services import documents
from ..services.document_fields import document_field_store
from ..services.footprints import footprint_recorder
from ..services.signing import signing_engine

router = APIRouter()

@router.post("/documents", response_model=schemas.Document, status_code=201)
def create_document(document: schemas.DocumentCreate, db: Session = Depends(get_db)):
    return documents.create_document(
        db, document.title, template_id=document.template_id, assignments=document.assignments
    )

@router.get("/documents/{document_id}", response_model=schemas.Document)
def get_document(document_id: int, db: Session = Depends(get_db)):
    return document_field_store.get_document(db, document_id)

@router.get("/documents/{document_id}/fields", response_model=list[schemas.DocumentField])
def list_document_fields(document_id: int, contact_id: Optional[str] = None, db: Session = Depends(get_db)):
    return document_field_store.list_fields(db, document_id, contact_id=contact_id)

@router.post("/documents/{document_id}/fields", response_model=schemas.DocumentField, status_code=201)
def add_field(document_id: int, field: schemas.DocumentFieldSpec, db: Session = Depends(get_db)):
    return document_field_store.create_field(db, document_id, field)

@router.delete("/documents/{document_id}/fields")
def remove_fields(document_id: int, db: Session = Depends(get_db)):
    removed = document_field_store.remove_all_for_document(db, document_id)
    return {"removed": removed}

@router.patch("/document-fields/{field_id}/assignee", response_model=schemas.DocumentField)
def assign_signer(field_id: int, assignee: schemas.AssigneeUpdate, db: Session = Depends(get_db)):
    return document_field_store.assign_signer(db, field_id, assignee.contact_id)

@router.patch("/document-fields/{field_id}/value", response_model=schemas.DocumentField)
def set_value(field_id: int, update: schemas.ValueUpdate, db: Session = Depends(get_db)):
    return document_field_store.set_value(db, field_id, **update.model_dump(exclude_unset=True))

@router.get("/documents/{document_id}/completion", response_model=schemas.CompletionStatus)
def get_completion(document_id: int, db: Session = Depends(get_db)):
    summary = signing_engine.completion_summary(db, document_id)
    return schemas.CompletionStatus(
        document_id=summary.document_id,
        complete=summary.complete,
        required_count=summary.required_count,
        signed_required_count=summary.signed_required_count,
        pending_field_ids=summary.pending_field_ids,
    )

@router.get("/documents/{document_id}/footprints", response_model=list[schemas.SignatureFootprint])
def list_footprints(document_id: int, contact_id: Optional[str] = None, db: Session = Depends(get_db)):
    document_field_store.get_document(db, document_id)
    return footprint_recorder.list_for_document(db, document_id, contact_id=contact_id)

@router.post("/footprints/{footprint_id}/note", response_model=schemas.SignatureFootprint)
def annotate_footprint(footprint_id: int, note: schemas.FootprintNote, db: Session = Depends(get_db)):
    return footprint_recorder.annotate(db, footprint_id, note.note)
