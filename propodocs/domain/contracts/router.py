"""Contract router - FastAPI endpoints for contract operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...config import PUBLIC_RATE_LIMIT, PUBLIC_RATE_WINDOW
from ...database import get_db
from ...models import User
from ...rate_limiter import client_ip, create_rate_limiter
from .schemas import (
    CommentCreate,
    CommentEnvelope,
    CommentListResponse,
    CommentResolveRequest,
    CommentResponse,
    ContractCreate,
    ContractListResponse,
    ContractPatch,
    ContractPublicView,
    ContractResponse,
    CounterSignRequest,
    CreateInvoiceResponse,
    GenerateFromProposalRequest,
    InvoiceResponse,
    PublicCommentCreate,
    SignContractRequest,
    SignContractResponse,
)
from .service import ContractService, public_view, to_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contracts", tags=["Contracts"])

rate_limit_view = create_rate_limiter(PUBLIC_RATE_LIMIT, PUBLIC_RATE_WINDOW, key_prefix="contract_view")
rate_limit_sign = create_rate_limiter(PUBLIC_RATE_LIMIT, PUBLIC_RATE_WINDOW, key_prefix="contract_sign")
rate_limit_comment = create_rate_limiter(PUBLIC_RATE_LIMIT, PUBLIC_RATE_WINDOW, key_prefix="contract_comment")


def get_contract_service(request: Request, db: Session = Depends(get_db)) -> ContractService:
    """Dependency injection for ContractService"""
    return ContractService(
        db,
        notifier=getattr(request.app.state, "notifier", None),
        pdf_service=getattr(request.app.state, "pdf_service", None),
    )


# ============================================================================
# PUBLIC SIGNING ENDPOINTS (access token, no auth)
# ============================================================================


@router.get("/view/{token}", response_model=ContractPublicView)
async def view_contract(
    token: str,
    service: ContractService = Depends(get_contract_service),
    _: None = Depends(rate_limit_view),
):
    """Client opens the signing link"""
    return public_view(service.view_by_token(token))


@router.post("/sign/{token}", response_model=SignContractResponse)
async def sign_contract(
    token: str,
    data: SignContractRequest,
    request: Request,
    service: ContractService = Depends(get_contract_service),
    _: None = Depends(rate_limit_sign),
):
    """Client signs through the signing link"""
    contract = await service.sign_by_token(
        token,
        signer_name=data.signer_name,
        signer_email=data.signer_email,
        signature_data=data.signature_data,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return SignContractResponse(success=True, contract=public_view(contract))


@router.get("/comments/{token}", response_model=CommentListResponse)
async def list_public_comments(
    token: str,
    service: ContractService = Depends(get_contract_service),
    _: None = Depends(rate_limit_view),
):
    """Client-visible thread; internal owner notes are left out"""
    comments = service.comments_by_token(token)
    return CommentListResponse(comments=[CommentResponse.model_validate(c) for c in comments])


@router.post("/comments/{token}", response_model=CommentEnvelope, status_code=201)
async def add_public_comment(
    token: str,
    data: PublicCommentCreate,
    service: ContractService = Depends(get_contract_service),
    _: None = Depends(rate_limit_comment),
):
    """Client comments through the signing link"""
    return CommentEnvelope(comment=CommentResponse.model_validate(service.comment_by_token(token, data)))


# ============================================================================
# OWNER ENDPOINTS
# ============================================================================


@router.get("", response_model=ContractListResponse)
async def list_contracts(
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
    status: Optional[str] = Query(None, description="Filter by status, 'expired' or 'all'"),
    proposal_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
):
    return service.list_contracts(current_user, status, proposal_id, page, limit)


@router.post("", response_model=ContractResponse, status_code=201)
async def create_contract(
    data: ContractCreate,
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    return to_response(service.create_contract(data, current_user))


@router.post("/from-proposal/{proposal_id}", response_model=ContractResponse, status_code=201)
async def generate_from_proposal(
    proposal_id: int,
    data: Optional[GenerateFromProposalRequest] = Body(None),
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    template_id = data.template_id if data else None
    return to_response(service.generate_from_proposal(proposal_id, current_user, template_id))


@router.get("/{contract_id}", response_model=ContractResponse)
async def get_contract(
    contract_id: int,
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    contract = service.get_contract(contract_id, current_user)
    return to_response(contract, service.signatures_for(contract))


@router.patch("/{contract_id}", response_model=ContractResponse)
async def update_contract(
    contract_id: int,
    data: ContractPatch,
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    return to_response(service.update_contract(contract_id, data, current_user))


@router.delete("/{contract_id}")
async def delete_contract(
    contract_id: int,
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    return service.delete_contract(contract_id, current_user)


@router.post("/{contract_id}/send", response_model=ContractResponse)
async def send_contract(
    contract_id: int,
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    return to_response(await service.send(contract_id, current_user))


@router.post("/{contract_id}/cancel", response_model=ContractResponse)
async def cancel_contract(
    contract_id: int,
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    return to_response(service.cancel(contract_id, current_user))


@router.post("/{contract_id}/countersign", response_model=ContractResponse)
async def countersign_contract(
    contract_id: int,
    data: CounterSignRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    contract = service.counter_sign(
        contract_id,
        current_user,
        signature_data=data.signature_data,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return to_response(contract, service.signatures_for(contract))


@router.post("/{contract_id}/pdf")
async def generate_contract_pdf(
    contract_id: int,
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    pdf_bytes = await service.render_pdf(contract_id, current_user)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename=contract-{contract_id}.pdf"},
    )


@router.post("/{contract_id}/create-invoice", response_model=CreateInvoiceResponse)
async def create_invoice_from_contract(
    contract_id: int,
    response: Response,
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    invoice, created = service.derive_invoice(contract_id, current_user)
    response.status_code = 201 if created else 200
    return CreateInvoiceResponse(invoice=InvoiceResponse.model_validate(invoice), created=created)


@router.get("/{contract_id}/comments", response_model=CommentListResponse)
async def list_contract_comments(
    contract_id: int,
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    comments = service.list_comments(contract_id, current_user)
    return CommentListResponse(comments=[CommentResponse.model_validate(c) for c in comments])


@router.post("/{contract_id}/comments", response_model=CommentEnvelope, status_code=201)
async def add_contract_comment(
    contract_id: int,
    data: CommentCreate,
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    comment = service.add_comment(contract_id, current_user, data)
    return CommentEnvelope(comment=CommentResponse.model_validate(comment))


@router.patch("/{contract_id}/comments/{comment_id}/resolve", response_model=CommentEnvelope)
async def resolve_contract_comment(
    contract_id: int,
    comment_id: int,
    data: Optional[CommentResolveRequest] = Body(None),
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    is_resolved = data.is_resolved if data else True
    comment = service.resolve_comment(contract_id, comment_id, current_user, is_resolved)
    return CommentEnvelope(comment=CommentResponse.model_validate(comment))
