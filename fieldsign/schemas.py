from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from typing import Dict, List, Optional, Union
from datetime import datetime
from .errors import ValidationError
from .models import DocumentStatus, FieldState, FieldType

Scalar = Union[bool, int, float, str]
FieldValue = Optional[Union[bool, str]]

# ── Per-type field metadata ──────────────────────────────────────────

class _MetadataBase(BaseModel):
    # Unknown keys are kept, but only as scalars
    model_config = ConfigDict(extra="allow")

    @classmethod
    def _check_extras(cls, data):
        if isinstance(data, dict):
            for key, value in data.items():
                if key in cls.model_fields:
                    continue
                if not isinstance(key, str) or not isinstance(value, (bool, int, float, str)):
                    raise ValueError(f"metadata '{key}' must be a string, number or boolean")
        return data

class SignatureMetadata(_MetadataBase):
    include_name: bool = True
    include_date: bool = True

class TextMetadata(_MetadataBase):
    font_size: int = Field(default=12, gt=0)
    is_bold: bool = False
    is_italic: bool = False

class CheckboxMetadata(_MetadataBase):
    checkbox_size: int = Field(default=100, ge=1, le=100)

class DateMetadata(_MetadataBase):
    date_format: str = "%m/%d/%Y"
    font_size: int = Field(default=12, gt=0)

METADATA_MODELS = {
    FieldType.SIGNATURE: SignatureMetadata,
    FieldType.TEXT: TextMetadata,
    FieldType.CHECKBOX: CheckboxMetadata,
    FieldType.DATE: DateMetadata,
}

def parse_field_type(raw) -> FieldType:
    try:
        return FieldType(raw)
    except ValueError:
        allowed = ", ".join(t.value for t in FieldType)
        raise ValidationError(f"unknown field type {raw!r}; expected one of {allowed}") from None

def parse_metadata(field_type, raw: Optional[dict]) -> dict:
    """Validate ``raw`` against the metadata variant of ``field_type``.

    Returns the plain dict that gets stored, defaults filled in.
    """
    model = METADATA_MODELS[parse_field_type(field_type)]
    raw = dict(raw or {})
    try:
        model._check_extras(raw)
        return model.model_validate(raw).model_dump()
    except (PydanticValidationError, ValueError) as exc:
        raise ValidationError(f"invalid {model.__name__}: {exc}") from None

# ── Field specs ──────────────────────────────────────────────────────

class FieldSpec(BaseModel):
    field_type: FieldType
    field_name: str = ""
    placeholder: str = ""
    page: int = 1
    x_position: float
    y_position: float
    width: float
    height: float
    required: bool = False
    metadata: Dict[str, Scalar] = Field(default_factory=dict)

class FieldPatch(BaseModel):
    field_type: Optional[FieldType] = None
    field_name: Optional[str] = None
    placeholder: Optional[str] = None
    page: Optional[int] = None
    x_position: Optional[float] = None
    y_position: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    required: Optional[bool] = None
    metadata: Optional[Dict[str, Scalar]] = None

class DocumentFieldSpec(FieldSpec):
    field_id: Optional[int] = None
    value: FieldValue = None
    file_id: Optional[str] = None
    contact_id: Optional[str] = None

class TemplateField(BaseModel):
    id: int
    template_id: int
    field_type: str
    field_name: str
    placeholder: str
    page: int
    x_position: float
    y_position: float
    width: float
    height: float
    required: bool
    metadata: Dict[str, Scalar] = Field(
        default_factory=dict, validation_alias=AliasChoices("field_metadata", "metadata")
    )
    model_config = ConfigDict(from_attributes=True)

class DocumentField(BaseModel):
    id: int
    document_id: int
    field_id: Optional[int] = None
    field_type: str
    field_name: str
    placeholder: str
    page: int
    x_position: float
    y_position: float
    width: float
    height: float
    required: bool
    metadata: Dict[str, Scalar] = Field(
        default_factory=dict, validation_alias=AliasChoices("field_metadata", "metadata")
    )
    value: FieldValue = None
    file_id: Optional[str] = None
    contact_id: Optional[str] = None
    is_signed: bool
    signed_at: Optional[datetime] = None
    state: FieldState
    model_config = ConfigDict(from_attributes=True)

class AssigneeUpdate(BaseModel):
    contact_id: Optional[str] = None

class ValueUpdate(BaseModel):
    value: FieldValue = None
    file_id: Optional[str] = None

# ── Templates and documents ──────────────────────────────────────────

class TemplateCreate(BaseModel):
    name: str

class Template(BaseModel):
    id: int
    name: str
    created_at: Optional[datetime] = None
    fields: List[TemplateField] = []
    model_config = ConfigDict(from_attributes=True)

class DocumentCreate(BaseModel):
    title: str
    template_id: Optional[int] = None
    # template field id -> contact id
    assignments: Dict[int, str] = Field(default_factory=dict)

class Document(BaseModel):
    id: int
    title: str
    template_id: Optional[int] = None
    status: DocumentStatus
    created_at: Optional[datetime] = None
    fields: List[DocumentField] = []
    model_config = ConfigDict(from_attributes=True)

class CompletionStatus(BaseModel):
    document_id: int
    complete: bool
    required_count: int
    signed_required_count: int
    pending_field_ids: List[int] = []

# ── Request provenance ───────────────────────────────────────────────

class RequestHeaders(BaseModel):
    referer: Optional[str] = None
    origin: Optional[str] = None
    accept_language: Optional[str] = None
    accept_encoding: Optional[str] = None
    accept: Optional[str] = None
    host: Optional[str] = None
    connection: Optional[str] = None
    cache_control: Optional[str] = None

class RequestInfo(BaseModel):
    method: str
    url: str
    protocol: str
    secure: bool = False

class RequestContext(BaseModel):
    """Network and request metadata captured for a signing action."""

    ip_address: Optional[str] = None
    forwarded_ip: Optional[str] = None
    real_ip: Optional[str] = None
    user_agent: Optional[str] = None
    headers: RequestHeaders = Field(default_factory=RequestHeaders)
    request_info: RequestInfo

class SignatureFootprint(BaseModel):
    id: int
    document_id: int
    contact_id: str
    action: str
    field_ids: List[int] = []
    ip_address: Optional[str] = None
    forwarded_ip: Optional[str] = None
    real_ip: Optional[str] = None
    user_agent: Optional[str] = None
    request_headers: Dict[str, str] = {}
    request_info: Dict[str, Union[bool, str]] = {}
    reason: Optional[str] = None
    correction_note: Optional[str] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

class FootprintNote(BaseModel):
    note: str

# ── Signing ──────────────────────────────────────────────────────────

class BatchSignRequest(BaseModel):
    document_id: int
    contact_id: str

class BatchSignResponse(BaseModel):
    success: bool
    message: str
    signed_fields_count: int
    footprint_id: Optional[int] = None

class ResetRequest(BaseModel):
    document_id: int
    contact_id: str
    reason: str

class ResetResponse(BaseModel):
    reset_fields_count: int
    footprint_id: int
