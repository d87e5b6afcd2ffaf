from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, event, inspect
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from .database import Base
from .errors import ConflictError

class DocumentStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    ARCHIVED = "archived"

# Documents in these states can still gain signatures
ACTIVE_STATUSES = frozenset({DocumentStatus.PENDING, DocumentStatus.IN_PROGRESS})

class FieldType(str, enum.Enum):
    SIGNATURE = "signature"
    TEXT = "text"
    CHECKBOX = "checkbox"
    DATE = "date"

class FieldState(str, enum.Enum):
    UNASSIGNED = "unassigned"
    ASSIGNED = "assigned"
    SIGNED = "signed"

class FootprintAction(str, enum.Enum):
    SIGNED = "signed"
    RESET = "reset"

class Template(Base):
    __tablename__ = "templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    fields = relationship("TemplateField", back_populates="template", order_by="TemplateField.id")

class TemplateField(Base):
    __tablename__ = "template_fields"

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(Integer, ForeignKey("templates.id"), nullable=False, index=True)
    field_type = Column(String, nullable=False)
    field_name = Column(String, nullable=False, default="")
    placeholder = Column(String, nullable=False, default="")
    page = Column(Integer, nullable=False, default=1)
    x_position = Column(Float, nullable=False)
    y_position = Column(Float, nullable=False)
    width = Column(Float, nullable=False)
    height = Column(Float, nullable=False)
    required = Column(Boolean, nullable=False, default=False)
    # "metadata" is reserved on declarative classes
    field_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    template = relationship("Template", back_populates="fields")

class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(Integer, ForeignKey("templates.id"), nullable=True, index=True)
    title = Column(String, nullable=False)
    status = Column(String, nullable=False, default=DocumentStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    fields = relationship("DocumentField", back_populates="document", order_by="DocumentField.id")
    footprints = relationship("SignatureFootprint", back_populates="document", order_by="SignatureFootprint.id")

class DocumentField(Base):
    __tablename__ = "document_fields"

    id = Column(Integer, primary_key=True, index=True)
    document_id = Column(Integer, ForeignKey("documents.id"), nullable=False, index=True)
    # Origin template field. Not a foreign key: snapshots outlive their origin.
    field_id = Column(Integer, nullable=True, index=True)

    field_type = Column(String, nullable=False)
    field_name = Column(String, nullable=False, default="")
    placeholder = Column(String, nullable=False, default="")
    page = Column(Integer, nullable=False, default=1)
    x_position = Column(Float, nullable=False)
    y_position = Column(Float, nullable=False)
    width = Column(Float, nullable=False)
    height = Column(Float, nullable=False)
    required = Column(Boolean, nullable=False, default=False)
    field_metadata = Column("metadata", JSON, nullable=False, default=dict)

    value = Column(JSON(none_as_null=True), nullable=True)
    file_id = Column(String, nullable=True)
    contact_id = Column(String, nullable=True, index=True)
    is_signed = Column(Boolean, nullable=False, default=False)
    signed_at = Column(DateTime(timezone=True), nullable=True)
    footprint_id = Column(Integer, ForeignKey("signature_footprints.id"), nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    document = relationship("Document", back_populates="fields")
    footprint = relationship("SignatureFootprint")

    __mapper_args__ = {"version_id_col": version}

    @property
    def state(self) -> FieldState:
        if self.is_signed:
            return FieldState.SIGNED
        if self.contact_id is None:
            return FieldState.UNASSIGNED
        return FieldState.ASSIGNED

    @property
    def has_input(self) -> bool:
        """True when the field carries what signing it requires."""
        if self.field_type == FieldType.SIGNATURE.value and self.file_id:
            return True
        if self.value is None:
            return False
        if isinstance(self.value, str):
            return self.value.strip() != ""
        return True

class SignatureFootprint(Base):
    __tablename__ = "signature_footprints"

    id = Column(Integer, primary_key=True, index=True)
    document_id = Column(Integer, ForeignKey("documents.id"), nullable=False, index=True)
    contact_id = Column(String, nullable=False, index=True)
    action = Column(String, nullable=False, default=FootprintAction.SIGNED.value)
    field_ids = Column(JSON, nullable=False, default=list)
    ip_address = Column(String, nullable=True)
    forwarded_ip = Column(String, nullable=True)
    real_ip = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    request_headers = Column(JSON, nullable=False, default=dict)
    request_info = Column(JSON, nullable=False, default=dict)
    reason = Column(Text, nullable=True)
    correction_note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    document = relationship("Document", back_populates="footprints")

# Everything except correction_note is evidence
PROVENANCE_COLUMNS = (
    "document_id",
    "contact_id",
    "action",
    "field_ids",
    "ip_address",
    "forwarded_ip",
    "real_ip",
    "user_agent",
    "request_headers",
    "request_info",
    "reason",
    "created_at",
)

@event.listens_for(SignatureFootprint, "before_update")
def _reject_provenance_change(mapper, connection, target):
    state = inspect(target)
    changed = [name for name in PROVENANCE_COLUMNS if state.attrs[name].history.has_changes()]
    if changed:
        raise ConflictError(
            f"Signature footprint {target.id} is immutable; refusing to change {', '.join(changed)}"
        )

@event.listens_for(SignatureFootprint, "before_delete")
def _reject_footprint_delete(mapper, connection, target):
    raise ConflictError(f"Signature footprint {target.id} is append-only and cannot be deleted")
