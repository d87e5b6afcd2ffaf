from fastapi import APIRouter, Depends, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from .. import models, schemas
from ..database import get_db
from ..errors import PersistenceError
from ..services.template_fields import template_field_store

router = APIRouter()

@router.post("/templates", response_model=schemas.Template, status_code=201)
def create_template(template: schemas.TemplateCreate, db: Session = Depends(get_db)):
    db_template = models.Template(name=template.name)
    db.add(db_template)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Could not create template") from exc
    db.refresh(db_template)
    return db_template

@router.get("/templates/{template_id}", response_model=schemas.Template)
def get_template(template_id: int, db: Session = Depends(get_db)):
    return template_field_store.get_template(db, template_id)

@router.get("/templates/{template_id}/fields", response_model=list[schemas.TemplateField])
def list_template_fields(template_id: int, db: Session = Depends(get_db)):
    return template_field_store.list_fields(db, template_id)

@router.post("/templates/{template_id}/fields", response_model=schemas.TemplateField, status_code=201)
def create_template_field(template_id: int, field: schemas.FieldSpec, db: Session = Depends(get_db)):
    return template_field_store.create_field(db, template_id, field)

@router.patch("/template-fields/{field_id}", response_model=schemas.TemplateField)
def update_template_field(field_id: int, patch: schemas.FieldPatch, db: Session = Depends(get_db)):
    return template_field_store.update_field(db, field_id, patch)

@router.delete("/template-fields/{field_id}", status_code=204)
def delete_template_field(field_id: int, db: Session = Depends(get_db)):
    template_field_store.delete_field(db, field_id)
    return Response(status_code=204)
