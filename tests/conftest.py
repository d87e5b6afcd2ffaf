"""Shared fixtures: an in-memory SQLite database per test and factories."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fieldsign import models
from fieldsign.database import Base, get_db
from fieldsign.main import app
from fieldsign.schemas import RequestContext, RequestHeaders, RequestInfo
from fieldsign.services.template_fields import template_field_store

from .helpers import field_spec


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def context():
    return RequestContext(
        ip_address="203.0.113.7",
        user_agent="Mozilla/5.0 (pytest)",
        headers=RequestHeaders(accept="*/*", host="sign.example"),
        request_info=RequestInfo(
            method="POST",
            url="https://sign.example/signing/batch-sign",
            protocol="https",
            secure=True,
        ),
    )


@pytest.fixture()
def make_template(db):
    def _make(name="NDA"):
        template = models.Template(name=name)
        db.add(template)
        db.commit()
        db.refresh(template)
        return template

    return _make


@pytest.fixture()
def make_template_field(db):
    def _make(template, **overrides):
        return template_field_store.create_field(db, template.id, field_spec(**overrides))

    return _make


@pytest.fixture()
def make_document(db):
    def _make(title="Contract", template_id=None, status=models.DocumentStatus.PENDING):
        document = models.Document(title=title, template_id=template_id, status=status.value)
        db.add(document)
        db.commit()
        db.refresh(document)
        return document

    return _make


@pytest.fixture()
def make_document_field(db):
    def _make(document, **attrs):
        values = {
            "document_id": document.id,
            "field_type": "text",
            "field_name": "Field",
            "page": 1,
            "x_position": 0.1,
            "y_position": 0.1,
            "width": 0.2,
            "height": 0.05,
            "required": True,
            "field_metadata": {},
            "is_signed": False,
        }
        values.update(attrs)
        field = models.DocumentField(**values)
        db.add(field)
        db.commit()
        db.refresh(field)
        return field

    return _make
