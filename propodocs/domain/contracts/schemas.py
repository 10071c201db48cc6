"""Contract domain schemas - Pydantic models for validation"""

import base64
import binascii
import re
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ...utils.dates import to_naive_utc
from ...utils.sanitization import sanitize_multiline, sanitize_string

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SIGNATURE_DATA_RE = re.compile(r"^data:image/(png|jpeg|jpg|svg\+xml);base64,([A-Za-z0-9+/=\s]+)$")
MAX_SIGNATURE_BYTES = 2 * 1024 * 1024
MAX_AMOUNT = 10_000_000

PriceType = Literal["monthly", "one-time"]


def normalize_price_type(value: Optional[str]) -> str:
    """Map calculator price types onto monthly / one-time"""
    if not value:
        return "monthly"
    normalized = value.strip().lower().replace("_", "-").replace(" ", "-")
    if normalized in ("monthly", "month", "mo", "recurring"):
        return "monthly"
    return "one-time"


def _optional_email(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip().lower()
    if v == "":
        return None
    if len(v) > 254 or not EMAIL_RE.match(v):
        raise ValueError("Invalid email format")
    return v


class Deliverable(BaseModel):
    """Priced line item attached to a contract"""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    price: float = Field(0, ge=0, le=MAX_AMOUNT)
    price_type: PriceType = Field(
        "one-time", validation_alias=AliasChoices("price_type", "priceType")
    )

    @field_validator("name", "description", mode="before")
    @classmethod
    def clean_text(cls, v):
        return sanitize_string(v)

    @field_validator("price", mode="before")
    @classmethod
    def default_price(cls, v):
        return 0 if v is None else v

    @field_validator("price_type", mode="before")
    @classmethod
    def validate_price_type(cls, v):
        return normalize_price_type(v) if v is not None else "one-time"


class ContractFields(BaseModel):
    """Shared validation for contract create / patch payloads"""

    @field_validator(
        "client_name", "client_company", "client_address", "title", "contract_term",
        mode="before", check_fields=False,
    )
    @classmethod
    def clean_text(cls, v):
        return sanitize_string(v) if isinstance(v, str) else v

    @field_validator("content", mode="before", check_fields=False)
    @classmethod
    def clean_content(cls, v):
        return sanitize_multiline(v) if isinstance(v, str) else v

    @field_validator("client_email", check_fields=False)
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return _optional_email(v)

    @field_validator("expires_at", check_fields=False)
    @classmethod
    def normalize_expiry(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class ContractCreate(ContractFields):
    """Schema for creating a new contract"""

    proposal_id: Optional[int] = None
    template_id: Optional[int] = None
    client_name: str = Field(..., min_length=1, max_length=200)
    client_company: Optional[str] = Field(None, max_length=200)
    client_email: Optional[str] = None
    client_address: Optional[str] = Field(None, max_length=500)
    title: str = Field(..., min_length=1, max_length=300)
    content: str = Field(..., min_length=1, max_length=100_000)
    deliverables: list[Deliverable] = Field(default_factory=list)
    total_value: Optional[float] = Field(None, ge=0, le=MAX_AMOUNT)
    contract_term: Optional[str] = Field(None, max_length=100)
    expires_at: Optional[datetime] = None


class ContractPatch(ContractFields):
    """Owner edits to a draft. Only these fields are mutable; anything else is rejected."""

    model_config = ConfigDict(extra="forbid")

    client_name: Optional[str] = Field(None, min_length=1, max_length=200)
    client_company: Optional[str] = Field(None, max_length=200)
    client_email: Optional[str] = None
    client_address: Optional[str] = Field(None, max_length=500)
    title: Optional[str] = Field(None, min_length=1, max_length=300)
    content: Optional[str] = Field(None, min_length=1, max_length=100_000)
    deliverables: Optional[list[Deliverable]] = None
    total_value: Optional[float] = Field(None, ge=0, le=MAX_AMOUNT)
    contract_term: Optional[str] = Field(None, max_length=100)
    expires_at: Optional[datetime] = None

    def to_values(self) -> dict:
        values = self.model_dump(exclude_unset=True)
        if "deliverables" in values:
            values["deliverables"] = [d.model_dump() for d in self.deliverables or []]
        # Required columns cannot be cleared
        for field in ("client_name", "title", "content"):
            if field in values and values[field] is None:
                del values[field]
        return values


class GenerateFromProposalRequest(BaseModel):
    """Optional template choice when generating a contract from a proposal"""

    template_id: Optional[int] = Field(
        None, validation_alias=AliasChoices("template_id", "templateId")
    )


class SignContractRequest(BaseModel):
    """Public signing form body. Detailed checks happen in SignaturePayload."""

    signer_name: str = ""
    signer_email: Optional[str] = None
    signature_data: str = ""


class CounterSignRequest(BaseModel):
    """Schema for provider counter-signature"""

    signature_data: str = ""


class SignaturePayload(BaseModel):
    """Validated signing event input"""

    signer_name: str = Field(..., min_length=1, max_length=200)
    signer_email: Optional[str] = None
    signature_data: str
    ip_address: Optional[str] = Field(None, max_length=45)
    user_agent: Optional[str] = None

    @field_validator("signer_name", mode="before")
    @classmethod
    def clean_name(cls, v):
        return sanitize_string(v) if isinstance(v, str) else v

    @field_validator("signer_email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return _optional_email(v)

    @field_validator("signature_data")
    @classmethod
    def validate_signature_image(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Signature image is required")
        match = SIGNATURE_DATA_RE.match(v)
        if not match:
            raise ValueError("Signature must be a base64 data:image URL (png, jpeg or svg)")
        try:
            raw = base64.b64decode(match.group(2), validate=False)
        except (binascii.Error, ValueError) as e:
            raise ValueError("Signature image is not valid base64") from e
        if not raw:
            raise ValueError("Signature image is empty")
        if len(raw) > MAX_SIGNATURE_BYTES:
            raise ValueError("Signature image exceeds 2 MB")
        return v

    @field_validator("user_agent")
    @classmethod
    def truncate_user_agent(cls, v: Optional[str]) -> Optional[str]:
        return v[:500] if v else v


class SignatureResponse(BaseModel):
    id: int
    signer_type: str
    signer_name: str
    signer_email: Optional[str] = None
    signature_data: str
    signed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ContractResponse(BaseModel):
    """Owner view of a contract, including owner-private fields"""

    id: int
    user_id: int
    proposal_id: Optional[int] = None
    template_id: Optional[int] = None
    client_name: str
    client_company: Optional[str] = None
    client_email: Optional[str] = None
    client_address: Optional[str] = None
    title: str
    content: str
    deliverables: list[Deliverable]
    total_value: Optional[float] = None
    contract_term: Optional[str] = None
    access_token: str
    signing_url: str
    expires_at: Optional[datetime] = None
    is_expired: bool
    status: str
    sent_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    client_signed_at: Optional[datetime] = None
    user_signed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    signatures: list[SignatureResponse] = Field(default_factory=list)


class ContractPublicView(BaseModel):
    """What the client sees through the access token. Never includes the token."""

    id: int
    title: str
    content: str
    client_name: str
    client_company: Optional[str] = None
    deliverables: list[Deliverable]
    total_value: Optional[float] = None
    contract_term: Optional[str] = None
    status: str
    client_signed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SignContractResponse(BaseModel):
    success: bool = True
    contract: ContractPublicView


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class ContractListResponse(BaseModel):
    contracts: list[ContractResponse]
    pagination: Pagination


class InvoiceLineItem(BaseModel):
    description: str
    quantity: int = 1
    unit_price: float
    amount: float
    price_type: PriceType = "one-time"


class InvoiceResponse(BaseModel):
    id: int
    contract_id: int
    invoice_number: str
    title: str
    client_name: str
    client_email: Optional[str] = None
    client_company: Optional[str] = None
    client_address: Optional[str] = None
    line_items: list[InvoiceLineItem]
    subtotal: float
    tax_rate: float
    tax_amount: float
    total: float
    currency: str
    due_date: Optional[date] = None
    status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CreateInvoiceResponse(BaseModel):
    invoice: InvoiceResponse
    created: bool


class PublicCommentCreate(BaseModel):
    """Comment posted through the signing link. Always visible to both parties."""

    author_name: Optional[str] = Field(None, max_length=200)
    content: str = Field(..., min_length=1, max_length=5000)
    parent_comment_id: Optional[int] = None

    @field_validator("author_name", mode="before")
    @classmethod
    def clean_author(cls, v):
        return (sanitize_string(v) or None) if isinstance(v, str) else v

    @field_validator("content", mode="before")
    @classmethod
    def clean_content(cls, v):
        return sanitize_multiline(v).strip() if isinstance(v, str) else v


class CommentCreate(PublicCommentCreate):
    """Owner comment; internal ones never reach the client"""

    is_internal: bool = False


class CommentResolveRequest(BaseModel):
    is_resolved: bool = True


class CommentResponse(BaseModel):
    id: int
    contract_id: int
    author_name: str
    content: str
    parent_comment_id: Optional[int] = None
    is_internal: bool
    is_resolved: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CommentEnvelope(BaseModel):
    comment: CommentResponse


class CommentListResponse(BaseModel):
    comments: list[CommentResponse]
