"""Contract service - Business logic for the contract lifecycle"""

import logging
import math
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import COMPANY_NAME, DEFAULT_GOVERNING_STATE
from ...models import Contract, ContractComment, ContractSignature, Proposal, User
from ...models_invoice import Invoice
from ...services.notification_service import ContractNotifier, ContractSummary, signing_link
from ...utils.dates import format_amount, format_us_date, is_past, utcnow
from ..contract_templates.service import TemplateService
from . import templating, tokens
from .errors import Cancelled, Expired, Forbidden, InvalidState, NotFound, ValidationFailed
from .invoicing import derive_invoice
from .ledger import CLIENT, PROVIDER, SignatureLedger
from .pdf_service import ContractPDFService
from .repository import ContractRepository
from .schemas import (
    CommentCreate,
    ContractCreate,
    ContractListResponse,
    ContractPatch,
    ContractPublicView,
    ContractResponse,
    Deliverable,
    Pagination,
    PublicCommentCreate,
    SignatureResponse,
    SignaturePayload,
    normalize_price_type,
)

logger = logging.getLogger(__name__)

TOKEN_ATTEMPTS = 3
PRE_SIGNATURE_STATUSES = ("draft", "sent", "viewed")


def _not_expired(now):
    return or_(Contract.expires_at.is_(None), Contract.expires_at >= now)


def to_response(contract: Contract, signatures: Optional[list[ContractSignature]] = None) -> ContractResponse:
    """Owner-facing view of a contract"""
    return ContractResponse(
        id=contract.id,
        user_id=contract.user_id,
        proposal_id=contract.proposal_id,
        template_id=contract.template_id,
        client_name=contract.client_name,
        client_company=contract.client_company,
        client_email=contract.client_email,
        client_address=contract.client_address,
        title=contract.title,
        content=contract.content,
        deliverables=contract.deliverables or [],
        total_value=contract.total_value,
        contract_term=contract.contract_term,
        access_token=contract.access_token,
        signing_url=signing_link(contract.access_token),
        expires_at=contract.expires_at,
        is_expired=contract.client_signed_at is None and is_past(contract.expires_at),
        status=contract.status,
        sent_at=contract.sent_at,
        viewed_at=contract.viewed_at,
        client_signed_at=contract.client_signed_at,
        user_signed_at=contract.user_signed_at,
        cancelled_at=contract.cancelled_at,
        created_at=contract.created_at,
        updated_at=contract.updated_at,
        signatures=[SignatureResponse.model_validate(s) for s in signatures or []],
    )


def public_view(contract: Contract) -> ContractPublicView:
    """Client-facing view. Owner fields and the access token stay out."""
    return ContractPublicView(
        id=contract.id,
        title=contract.title,
        content=contract.content,
        client_name=contract.client_name,
        client_company=contract.client_company,
        deliverables=contract.deliverables or [],
        total_value=contract.total_value,
        contract_term=contract.contract_term,
        status=contract.status,
        client_signed_at=contract.client_signed_at,
        expires_at=contract.expires_at,
    )


def parse_amount(value) -> float:
    """Calculator amount as a float. Accepts numbers and strings like "$1,500"."""
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        raise TypeError("Amount must be a number")
    if isinstance(value, str):
        value = value.strip().lstrip("$").replace(",", "").strip()
    return float(value)


def deliverables_from_proposal(calculator_data: Optional[dict]) -> tuple[list[dict], float, float]:
    """
    Selected tier (monthly) plus selected add-ons. Returns (deliverables, monthly, setup fee).

    Malformed calculator data raises TypeError, ValueError or AttributeError.
    """
    data = calculator_data or {}
    deliverables = []
    monthly_amount = 0.0
    setup_fee = 0.0

    tier = data.get("selectedTier")
    if tier:
        monthly_amount = parse_amount(tier.get("monthlyPrice"))
        setup_fee = parse_amount(tier.get("setupFee"))
        deliverables.append(
            {
                "name": tier.get("name") or "Service",
                "description": tier.get("description"),
                "price": monthly_amount,
                "price_type": "monthly",
            }
        )

    for addon in (data.get("addOnStates") or {}).values():
        if not addon or not addon.get("selected"):
            continue
        deliverables.append(
            {
                "name": addon.get("name") or "Add-on",
                "description": addon.get("description"),
                "price": parse_amount(addon.get("price")),
                "price_type": normalize_price_type(addon.get("priceType")),
            }
        )

    return deliverables, monthly_amount, setup_fee


def deliverables_text(deliverables: list[dict]) -> str:
    return "\n".join(
        f"{i}. **{d['name']}**: {d.get('description') or ''} - ${format_amount(d.get('price'))}/{d['price_type']}"
        for i, d in enumerate(deliverables, start=1)
    )


class ContractService:
    """Service layer for contract business logic"""

    def __init__(
        self,
        db: Session,
        notifier: Optional[ContractNotifier] = None,
        pdf_service: Optional[ContractPDFService] = None,
    ):
        self.db = db
        self.repo = ContractRepository()
        self.ledger = SignatureLedger(db)
        self.notifier = notifier or ContractNotifier()
        self.pdf_service = pdf_service

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    def get_contract(self, contract_id: int, user: User) -> Contract:
        contract = self.repo.get_contract(self.db, contract_id)
        if not contract:
            raise NotFound()
        if contract.user_id != user.id:
            logger.warning(f"🚫 User {user.id} denied access to contract {contract_id}")
            raise Forbidden()
        return contract

    def list_contracts(
        self,
        user: User,
        status: Optional[str] = None,
        proposal_id: Optional[int] = None,
        page: int = 1,
        limit: int = 50,
    ) -> ContractListResponse:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        rows, total = self.repo.list_contracts(
            self.db,
            user.id,
            status=status,
            proposal_id=proposal_id,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return ContractListResponse(
            contracts=[to_response(c) for c in rows],
            pagination=Pagination(
                page=page, limit=limit, total=total, totalPages=math.ceil(total / limit) if total else 0
            ),
        )

    def create_contract(self, data: ContractCreate, user: User) -> Contract:
        contract_data = data.model_dump(exclude={"deliverables"})
        contract_data["deliverables"] = [d.model_dump() for d in data.deliverables]
        if contract_data.get("total_value") is None and data.deliverables:
            contract_data["total_value"] = round(sum(d.price for d in data.deliverables), 2)
        if contract_data.get("template_id"):
            # Ownership check only; the caller supplies the content
            TemplateService(self.db).get_template(contract_data["template_id"], user)
        if contract_data.get("proposal_id"):
            self._get_proposal(contract_data["proposal_id"], user)
        return self._insert(user, contract_data)

    def generate_from_proposal(
        self, proposal_id: int, user: User, template_id: Optional[int] = None
    ) -> Contract:
        proposal = self._get_proposal(proposal_id, user)
        template = TemplateService(self.db).resolve_template(user, template_id)

        try:
            deliverables, monthly_amount, setup_fee = deliverables_from_proposal(proposal.calculator_data)
            contract_term = str((proposal.calculator_data or {}).get("contractTerm") or "12 months")
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning(f"⚠️ Proposal {proposal_id} has malformed calculator data: {e}")
            raise ValidationFailed("Proposal data cannot form a valid contract") from e
        total_value = monthly_amount * 12 + setup_fee
        now = utcnow()

        values = {
            "effective_date": format_us_date(now.date()),
            "company_name": user.company or "Your Company",
            "company_address": "",
            "company_email": user.email or "",
            "client_name": proposal.client_name,
            "client_company": proposal.client_company or "",
            "client_address": "",
            "client_email": proposal.client_email or "",
            "deliverables": deliverables_text(deliverables),
            "contract_term": contract_term,
            "monthly_amount": f"${format_amount(monthly_amount)}",
            "setup_fee": f"${format_amount(setup_fee)}",
            "total_value": f"${format_amount(total_value)}",
            "milestones": "As per agreed deliverables schedule",
            "governing_state": DEFAULT_GOVERNING_STATE,
            "provider_name": user.full_name or "",
            "client_signer_name": proposal.client_name,
        }

        try:
            data = ContractCreate(
                proposal_id=proposal.id,
                template_id=template.id,
                client_name=proposal.client_name,
                client_company=proposal.client_company,
                client_email=proposal.client_email,
                title=f"{proposal.title} - Service Agreement"[:300],
                content=templating.render(template.content, values),
                deliverables=[Deliverable(**d) for d in deliverables],
                total_value=total_value,
                contract_term=contract_term,
            )
        except ValidationError as e:
            raise ValidationFailed("Proposal data cannot form a valid contract", errors=e.errors()) from e

        contract_data = data.model_dump(exclude={"deliverables"})
        contract_data["deliverables"] = [d.model_dump() for d in data.deliverables]
        contract = self._insert(user, contract_data)
        logger.info(f"📝 Contract {contract.id} generated from proposal {proposal_id} with template {template.id}")
        return contract

    def update_contract(self, contract_id: int, patch: ContractPatch, user: User) -> Contract:
        contract = self.get_contract(contract_id, user)
        values = patch.to_values()
        if not values:
            return contract

        matched = self.repo.update_if(
            self.db,
            contract_id,
            [Contract.status == "draft", Contract.client_signed_at.is_(None)],
            values,
        )
        if not matched:
            contract = self.repo.refresh(self.db, contract)
            raise InvalidState(f"Only draft contracts can be edited (status: {contract.status})")
        logger.info(f"✏️ Contract {contract_id} updated: {sorted(values)}")
        return self.repo.refresh(self.db, contract)

    async def send(self, contract_id: int, user: User) -> Contract:
        contract = self.get_contract(contract_id, user)
        now = utcnow()

        matched = self.repo.update_if(
            self.db,
            contract_id,
            [Contract.status == "draft", _not_expired(now)],
            {"status": "sent", "sent_at": now},
        )
        if not matched:
            # Re-send: re-stamp sent_at, status unchanged
            matched = self.repo.update_if(
                self.db,
                contract_id,
                [Contract.status.in_(("sent", "viewed")), _not_expired(now)],
                {"sent_at": now},
            )
        if not matched:
            contract = self.repo.refresh(self.db, contract)
            if contract.status in PRE_SIGNATURE_STATUSES and is_past(contract.expires_at, now):
                raise Expired()
            raise InvalidState(f"Contract cannot be sent while {contract.status}")

        contract = self.repo.refresh(self.db, contract)
        logger.info(f"📤 Contract {contract_id} sent (status: {contract.status})")
        await self._notify("contract_sent", self._summary(contract, user))
        return contract

    def cancel(self, contract_id: int, user: User) -> Contract:
        contract = self.get_contract(contract_id, user)
        now = utcnow()
        matched = self.repo.update_if(
            self.db,
            contract_id,
            [Contract.status.in_(PRE_SIGNATURE_STATUSES + ("signed",))],
            {"status": "cancelled", "cancelled_at": now},
        )
        if not matched:
            contract = self.repo.refresh(self.db, contract)
            raise InvalidState(f"Contract cannot be cancelled while {contract.status}")
        logger.info(f"🛑 Contract {contract_id} cancelled by user {user.id}")
        return self.repo.refresh(self.db, contract)

    def delete_contract(self, contract_id: int, user: User) -> dict:
        contract = self.get_contract(contract_id, user)
        if contract.client_signed_at or contract.user_signed_at or self.ledger.list_for(contract_id):
            raise InvalidState("Signed contracts cannot be deleted")
        self.repo.delete_contract(self.db, contract)
        logger.info(f"🗑️ Contract {contract_id} deleted by user {user.id}")
        return {"success": True}

    def counter_sign(
        self,
        contract_id: int,
        user: User,
        signature_data: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Contract:
        contract = self.get_contract(contract_id, user)
        payload = self._validate_signature(
            signer_name=user.full_name or "Provider",
            signer_email=user.email,
            signature_data=signature_data,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.ledger.append(contract_id, PROVIDER, payload, utcnow())
        return self.repo.refresh(self.db, contract)

    async def render_pdf(self, contract_id: int, user: User) -> bytes:
        contract = self.get_contract(contract_id, user)
        signatures = self.ledger.list_for(contract_id)
        provider_name = user.company or user.full_name or COMPANY_NAME
        pdf_service = self.pdf_service or ContractPDFService()
        return await pdf_service.render(contract, signatures, provider_name)

    def derive_invoice(self, contract_id: int, user: User) -> tuple[Invoice, bool]:
        contract = self.get_contract(contract_id, user)
        return derive_invoice(self.db, contract)

    def list_comments(self, contract_id: int, user: User) -> list[ContractComment]:
        self.get_contract(contract_id, user)
        return self.repo.list_comments(self.db, contract_id)

    def add_comment(self, contract_id: int, user: User, data: CommentCreate) -> ContractComment:
        contract = self.get_contract(contract_id, user)
        author = data.author_name or user.full_name or "Owner"
        return self._add_comment(contract, author, data, is_internal=data.is_internal, owner_view=True)

    def resolve_comment(
        self, contract_id: int, comment_id: int, user: User, is_resolved: bool = True
    ) -> ContractComment:
        self.get_contract(contract_id, user)
        comment = self.repo.get_comment(self.db, contract_id, comment_id)
        if not comment:
            raise NotFound("Comment not found")
        comment = self.repo.set_comment_resolved(self.db, comment, is_resolved)
        logger.info(f"💬 Comment {comment_id} on contract {contract_id} resolved={is_resolved}")
        return comment

    def signatures_for(self, contract: Contract) -> list[ContractSignature]:
        return self.ledger.list_for(contract.id)

    # ------------------------------------------------------------------
    # Public (token) operations
    # ------------------------------------------------------------------

    def view_by_token(self, token: str) -> Contract:
        contract = self._get_public(token)
        now = utcnow()
        if contract.status == "sent":
            # Only the first view moves sent -> viewed
            if self.repo.update_if(
                self.db,
                contract.id,
                [Contract.status == "sent", _not_expired(now)],
                {"status": "viewed", "viewed_at": now},
            ):
                logger.info(f"👀 Contract {contract.id} viewed by client")
            contract = self.repo.refresh(self.db, contract)
        return contract

    def comments_by_token(self, token: str) -> list[ContractComment]:
        contract = self._get_public(token)
        return self.repo.list_comments(self.db, contract.id, include_internal=False)

    def comment_by_token(self, token: str, data: PublicCommentCreate) -> ContractComment:
        contract = self._get_public(token)
        author = data.author_name or "Anonymous"
        return self._add_comment(contract, author, data, is_internal=False, owner_view=False)

    async def sign_by_token(
        self,
        token: str,
        signer_name: str,
        signer_email: Optional[str],
        signature_data: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Contract:
        payload = self._validate_signature(
            signer_name=signer_name,
            signer_email=signer_email,
            signature_data=signature_data,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        contract = self.repo.get_contract_by_token(self.db, token) if tokens.looks_like_token(token) else None
        if not contract:
            raise NotFound()

        # Drafts and expired links are rejected by the ledger guard
        self.ledger.append(contract.id, CLIENT, payload, utcnow())
        contract = self.repo.refresh(self.db, contract)

        owner = self.repo.get_user(self.db, contract.user_id)
        if owner:
            summary = self._summary(contract, owner, signer_name=payload.signer_name)
            await self._notify("contract_signed", summary)
        return contract

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_public(self, token: str) -> Contract:
        if not tokens.looks_like_token(token):
            raise NotFound()
        contract = self.repo.get_contract_by_token(self.db, token)
        if not contract:
            raise NotFound()
        # Expiry wins over every status, drafts included
        if is_past(contract.expires_at):
            raise Expired()
        if contract.status == "draft":
            raise NotFound()
        if contract.status == "cancelled":
            raise Cancelled()
        return contract

    def _add_comment(
        self,
        contract: Contract,
        author_name: str,
        data: PublicCommentCreate,
        is_internal: bool,
        owner_view: bool,
    ) -> ContractComment:
        if data.parent_comment_id is not None:
            parent = self.repo.get_comment(self.db, contract.id, data.parent_comment_id)
            # Internal comments do not exist as far as the client can tell
            if not parent or (parent.is_internal and not owner_view):
                raise NotFound("Comment not found")
            if parent.is_internal and not is_internal:
                raise ValidationFailed("Replies to internal comments must be internal")

        comment = self.repo.create_comment(
            self.db,
            contract_id=contract.id,
            author_name=author_name[:200],
            content=data.content,
            parent_comment_id=data.parent_comment_id,
            is_internal=is_internal,
            is_resolved=False,
        )
        logger.info(f"💬 Comment {comment.id} added to contract {contract.id} (internal: {is_internal})")
        return comment

    def _get_proposal(self, proposal_id: int, user: User) -> Proposal:
        proposal = self.repo.get_proposal(self.db, proposal_id, user.id)
        if not proposal:
            raise NotFound("Proposal not found")
        return proposal

    def _insert(self, user: User, contract_data: dict) -> Contract:
        contract_data = {**contract_data, "user_id": user.id, "status": "draft"}
        for attempt in range(TOKEN_ATTEMPTS):
            contract_data["access_token"] = tokens.issue()
            try:
                contract = self.repo.create_contract(self.db, **contract_data)
            except IntegrityError as e:
                self.db.rollback()
                logger.warning(f"⚠️ Contract insert conflict, retrying (attempt {attempt + 1}): {e.orig}")
                continue
            logger.info(f"✅ Contract {contract.id} created for user {user.id}")
            return contract
        raise InvalidState("Could not create contract")

    @staticmethod
    def _validate_signature(**fields) -> SignaturePayload:
        try:
            return SignaturePayload(**fields)
        except ValidationError as e:
            errors = [
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]
            message = "; ".join(f"{err['field']}: {err['message']}" for err in errors)
            raise ValidationFailed(message or None, errors=errors) from e

    @staticmethod
    def _summary(contract: Contract, owner: User, signer_name: Optional[str] = None) -> ContractSummary:
        return ContractSummary(
            contract_id=contract.id,
            title=contract.title,
            client_name=contract.client_name,
            client_email=contract.client_email,
            total_value=contract.total_value,
            signing_link=signing_link(contract.access_token),
            owner_email=owner.email,
            owner_name=owner.full_name,
            signer_name=signer_name,
        )

    async def _notify(self, event: str, summary: ContractSummary) -> None:
        # State is already committed; notification outcome never changes it
        try:
            await getattr(self.notifier, event)(summary)
        except Exception as e:
            logger.error(f"❌ {event} notification failed for contract {summary.contract_id}: {e}")
