from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    company = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=False), server_default=func.now())

    contracts = relationship("Contract", back_populates="user")
    proposals = relationship("Proposal", back_populates="user")


class Proposal(Base):
    __tablename__ = "proposals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(300), nullable=False)
    client_name = Column(String(200), nullable=False)
    client_company = Column(String(200), nullable=True)
    client_email = Column(String(254), nullable=True)
    # Pricing calculator snapshot: selectedTier, addOnStates, contractTerm
    calculator_data = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=False), server_default=func.now())

    user = relationship("User", back_populates="proposals")


class ContractTemplate(Base):
    __tablename__ = "contract_templates"

    id = Column(Integer, primary_key=True, index=True)
    # NULL owner means a system template visible to every user
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(String(1000), nullable=True)
    content = Column(Text, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=False), server_default=func.now())
    updated_at = Column(DateTime(timezone=False), server_default=func.now(), onupdate=func.now())


class Contract(Base):
    __tablename__ = "contracts"
    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'sent', 'viewed', 'signed', 'completed', 'cancelled')",
            name="ck_contracts_status",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    proposal_id = Column(Integer, ForeignKey("proposals.id"), nullable=True, index=True)
    template_id = Column(Integer, ForeignKey("contract_templates.id"), nullable=True)

    # Client party - free text, not tied to an identity
    client_name = Column(String(200), nullable=False)
    client_company = Column(String(200), nullable=True)
    client_email = Column(String(254), nullable=True)
    client_address = Column(String(500), nullable=True)

    title = Column(String(300), nullable=False)
    content = Column(Text, nullable=False)  # Frozen once client_signed_at is set
    deliverables = Column(JSON, nullable=False, default=list)  # [{name, description, price, price_type}]
    total_value = Column(Float, nullable=True)
    contract_term = Column(String(100), nullable=True)

    # Public access: write-once token, never rotated
    access_token = Column(String(64), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=True)

    status = Column(String(20), nullable=False, default="draft", index=True)  # draft → sent → viewed → signed → completed, or cancelled
    sent_at = Column(DateTime, nullable=True)
    viewed_at = Column(DateTime, nullable=True)
    client_signed_at = Column(DateTime, nullable=True)
    user_signed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=False), server_default=func.now())
    updated_at = Column(DateTime(timezone=False), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="contracts")
    template = relationship("ContractTemplate")
    signatures = relationship(
        "ContractSignature",
        back_populates="contract",
        order_by="ContractSignature.signed_at",
        cascade="all, delete-orphan",
    )
    comments = relationship(
        "ContractComment",
        back_populates="contract",
        order_by="ContractComment.created_at",
        cascade="all, delete-orphan",
    )


class ContractSignature(Base):
    """Immutable signing event. At most one per (contract, signer_type)."""

    __tablename__ = "contract_signatures"
    __table_args__ = (
        UniqueConstraint("contract_id", "signer_type", name="uq_contract_signatures_contract_signer"),
        CheckConstraint("signer_type IN ('client', 'provider')", name="ck_contract_signatures_signer"),
    )

    id = Column(Integer, primary_key=True, index=True)
    contract_id = Column(
        Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    signer_type = Column(String(20), nullable=False)
    signer_name = Column(String(200), nullable=False)
    signer_email = Column(String(254), nullable=True)
    signature_data = Column(Text, nullable=False)  # data:image/...;base64 rasterized signature
    ip_address = Column(String(45), nullable=True)  # IPv4 or IPv6
    user_agent = Column(String(500), nullable=True)
    signed_at = Column(DateTime, nullable=False)

    contract = relationship("Contract", back_populates="signatures")


class ContractComment(Base):
    """Discussion thread on a contract. Internal comments are owner-only."""

    __tablename__ = "contract_comments"

    id = Column(Integer, primary_key=True, index=True)
    contract_id = Column(
        Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_name = Column(String(200), nullable=False, default="Anonymous")
    content = Column(Text, nullable=False)
    parent_comment_id = Column(
        Integer, ForeignKey("contract_comments.id", ondelete="CASCADE"), nullable=True, index=True
    )
    is_internal = Column(Boolean, default=False, nullable=False)
    is_resolved = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=False), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=False), server_default=func.now(), onupdate=func.now())

    contract = relationship("Contract", back_populates="comments")
