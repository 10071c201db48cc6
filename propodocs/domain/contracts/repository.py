"""Contract repository - Database operations for contracts"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from ...models import Contract, ContractComment, ContractSignature, Proposal, User
from ...models_invoice import Invoice
from ...utils.dates import utcnow
from .errors import StorageUnavailable

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError)


@contextmanager
def storage_guard(db: Session, action: str):
    """Roll back and re-raise transient database failures as StorageUnavailable"""
    try:
        yield
    except TRANSIENT_ERRORS as e:
        db.rollback()
        logger.error(f"❌ Storage failure during {action}: {type(e).__name__}: {e}")
        raise StorageUnavailable() from e


class ContractRepository:
    """Repository for contract database operations"""

    @staticmethod
    def get_contract(db: Session, contract_id: int) -> Optional[Contract]:
        with storage_guard(db, "get_contract"):
            return db.get(Contract, contract_id)

    @staticmethod
    def get_contract_by_token(db: Session, access_token: str) -> Optional[Contract]:
        with storage_guard(db, "get_contract_by_token"):
            return db.execute(
                select(Contract).where(Contract.access_token == access_token)
            ).scalar_one_or_none()

    @staticmethod
    def list_contracts(
        db: Session,
        user_id: int,
        status: Optional[str] = None,
        proposal_id: Optional[int] = None,
        offset: int = 0,
        limit: int = 50,
        now: Optional[datetime] = None,
    ) -> tuple[list[Contract], int]:
        """Owner's contracts, newest first, with the unpaginated total"""
        filters = [Contract.user_id == user_id]
        if status == "expired":
            # Unsigned and past expiry: functionally cancelled, stored status unchanged
            filters.extend(
                [
                    Contract.client_signed_at.is_(None),
                    Contract.status.in_(("draft", "sent", "viewed")),
                    Contract.expires_at.is_not(None),
                    Contract.expires_at < (now or utcnow()),
                ]
            )
        elif status and status != "all":
            filters.append(Contract.status == status)
        if proposal_id:
            filters.append(Contract.proposal_id == proposal_id)

        with storage_guard(db, "list_contracts"):
            total = db.execute(select(func.count(Contract.id)).where(*filters)).scalar_one()
            rows = (
                db.execute(
                    select(Contract)
                    .where(*filters)
                    .order_by(Contract.created_at.desc(), Contract.id.desc())
                    .offset(offset)
                    .limit(limit)
                )
                .scalars()
                .all()
            )
        return list(rows), total

    @staticmethod
    def create_contract(db: Session, **contract_data) -> Contract:
        """Insert a contract. IntegrityError propagates so callers can retry token collisions."""
        contract = Contract(**contract_data)
        with storage_guard(db, "create_contract"):
            db.add(contract)
            db.commit()
            db.refresh(contract)
        return contract

    @staticmethod
    def update_if(
        db: Session,
        contract_id: int,
        predicate: list[ColumnElement],
        patch: dict[str, Any],
        commit: bool = True,
    ) -> bool:
        """
        Atomic conditional update (compare-and-set).

        Applies ``patch`` to the contract only if every clause in ``predicate``
        still holds at write time. Returns True when exactly one row changed.
        With ``commit=False`` the caller owns the transaction (used by the
        signature ledger to insert the signature in the same commit).
        """
        values = dict(patch)
        values.setdefault("updated_at", utcnow())
        stmt = (
            update(Contract)
            .where(and_(Contract.id == contract_id, *predicate))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with storage_guard(db, "update_if"):
            result = db.execute(stmt)
            matched = result.rowcount == 1
            if commit:
                if matched:
                    db.commit()
                else:
                    db.rollback()
        return matched

    @staticmethod
    def delete_contract(db: Session, contract: Contract) -> None:
        with storage_guard(db, "delete_contract"):
            db.delete(contract)
            db.commit()

    @staticmethod
    def refresh(db: Session, contract: Contract) -> Contract:
        with storage_guard(db, "refresh"):
            db.refresh(contract)
        return contract

    @staticmethod
    def list_signatures(db: Session, contract_id: int) -> list[ContractSignature]:
        with storage_guard(db, "list_signatures"):
            return list(
                db.execute(
                    select(ContractSignature)
                    .where(ContractSignature.contract_id == contract_id)
                    .order_by(ContractSignature.signed_at, ContractSignature.id)
                )
                .scalars()
                .all()
            )

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        with storage_guard(db, "get_user"):
            return db.get(User, user_id)

    @staticmethod
    def get_proposal(db: Session, proposal_id: int, user_id: int) -> Optional[Proposal]:
        with storage_guard(db, "get_proposal"):
            return db.execute(
                select(Proposal).where(Proposal.id == proposal_id, Proposal.user_id == user_id)
            ).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Invoices derived from contracts
    # ------------------------------------------------------------------

    @staticmethod
    def get_invoice_for_contract(db: Session, contract_id: int) -> Optional[Invoice]:
        with storage_guard(db, "get_invoice_for_contract"):
            return db.execute(
                select(Invoice).where(Invoice.contract_id == contract_id)
            ).scalar_one_or_none()

    @staticmethod
    def count_invoices_since(db: Session, user_id: int, since: datetime) -> int:
        with storage_guard(db, "count_invoices_since"):
            return db.execute(
                select(func.count(Invoice.id)).where(
                    Invoice.user_id == user_id,
                    or_(Invoice.created_at >= since, Invoice.created_at.is_(None)),
                )
            ).scalar_one()

    @staticmethod
    def create_invoice(db: Session, **invoice_data) -> Invoice:
        """Insert an invoice. IntegrityError propagates for the caller to resolve."""
        invoice = Invoice(**invoice_data)
        with storage_guard(db, "create_invoice"):
            db.add(invoice)
            db.commit()
            db.refresh(invoice)
        return invoice

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    @staticmethod
    def list_comments(db: Session, contract_id: int, include_internal: bool = True) -> list[ContractComment]:
        """Comments oldest first; the client-facing thread leaves out internal ones"""
        filters = [ContractComment.contract_id == contract_id]
        if not include_internal:
            filters.append(ContractComment.is_internal.is_(False))
        with storage_guard(db, "list_comments"):
            return list(
                db.execute(
                    select(ContractComment)
                    .where(*filters)
                    .order_by(ContractComment.created_at, ContractComment.id)
                )
                .scalars()
                .all()
            )

    @staticmethod
    def get_comment(db: Session, contract_id: int, comment_id: int) -> Optional[ContractComment]:
        with storage_guard(db, "get_comment"):
            return db.execute(
                select(ContractComment).where(
                    ContractComment.id == comment_id,
                    ContractComment.contract_id == contract_id,
                )
            ).scalar_one_or_none()

    @staticmethod
    def create_comment(db: Session, **comment_data) -> ContractComment:
        comment = ContractComment(**comment_data)
        with storage_guard(db, "create_comment"):
            db.add(comment)
            db.commit()
            db.refresh(comment)
        return comment

    @staticmethod
    def set_comment_resolved(db: Session, comment: ContractComment, is_resolved: bool) -> ContractComment:
        with storage_guard(db, "set_comment_resolved"):
            comment.is_resolved = is_resolved
            comment.updated_at = utcnow()
            db.commit()
            db.refresh(comment)
        return comment
