"""
Signature ledger - append-only signing events.

Each append is one transaction: a conditional UPDATE that moves the contract
to its next status (guarded on the relevant ``*_signed_at`` column still
being NULL), followed by the INSERT of the signature row, then a single
commit. If the guard matches no row nothing is written, and the failure is
classified from a fresh read. The ``(contract_id, signer_type)`` unique
constraint backs this up for any writer that bypasses the guard.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import Contract, ContractSignature
from ...utils.dates import is_past
from .errors import AlreadySigned, Cancelled, ClientNotYetSigned, Expired, InvalidState, NotFound
from .repository import ContractRepository, storage_guard
from .schemas import SignaturePayload

logger = logging.getLogger(__name__)

CLIENT = "client"
PROVIDER = "provider"


def _not_expired(now: datetime):
    return or_(Contract.expires_at.is_(None), Contract.expires_at >= now)


def transition_for(signer_type: str, now: datetime) -> tuple[list, dict]:
    """Guard predicate and status patch for a signer type"""
    if signer_type == CLIENT:
        predicate = [
            Contract.client_signed_at.is_(None),
            Contract.status.in_(("sent", "viewed")),
            _not_expired(now),
        ]
        patch = {"status": "signed", "client_signed_at": now, "updated_at": now}
    elif signer_type == PROVIDER:
        predicate = [
            Contract.user_signed_at.is_(None),
            Contract.client_signed_at.is_not(None),
            Contract.status == "signed",
            _not_expired(now),
        ]
        patch = {"status": "completed", "user_signed_at": now, "updated_at": now}
    else:
        raise ValueError(f"Unknown signer type: {signer_type}")
    return predicate, patch


def classify_rejection(contract: Optional[Contract], signer_type: str, now: datetime) -> Exception:
    """Explain why a guarded sign did not apply, in precondition order"""
    if contract is None:
        return NotFound()
    if signer_type == CLIENT:
        if contract.client_signed_at is not None:
            return AlreadySigned()
        if is_past(contract.expires_at, now):
            return Expired()
        if contract.status == "cancelled":
            return Cancelled()
        if contract.status == "draft":
            return NotFound()
        return InvalidState(f"Contract cannot be signed while {contract.status}")

    if contract.client_signed_at is None:
        return ClientNotYetSigned()
    if contract.user_signed_at is not None:
        return AlreadySigned("Contract already counter-signed")
    if is_past(contract.expires_at, now):
        return Expired()
    if contract.status == "cancelled":
        return Cancelled()
    return InvalidState(f"Contract cannot be counter-signed while {contract.status}")


class SignatureLedger:
    """Append-only record of signing events tied to a contract"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ContractRepository()

    def append(
        self,
        contract_id: int,
        signer_type: str,
        payload: SignaturePayload,
        now: datetime,
    ) -> ContractSignature:
        predicate, patch = transition_for(signer_type, now)

        try:
            matched = self.repo.update_if(self.db, contract_id, predicate, patch, commit=False)
            if not matched:
                self.db.rollback()
                contract = self.repo.get_contract(self.db, contract_id)
                error = classify_rejection(contract, signer_type, now)
                logger.info(
                    f"🚫 {signer_type} signature rejected for contract {contract_id}: {error.code}"
                )
                raise error

            signature = ContractSignature(
                contract_id=contract_id,
                signer_type=signer_type,
                signer_name=payload.signer_name,
                signer_email=payload.signer_email,
                signature_data=payload.signature_data,
                ip_address=payload.ip_address,
                user_agent=payload.user_agent,
                signed_at=now,
            )
            with storage_guard(self.db, "append_signature"):
                self.db.add(signature)
                self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"⚠️ Duplicate {signer_type} signature blocked for contract {contract_id}")
            raise AlreadySigned() from e

        self.db.refresh(signature)
        logger.info(f"✅ Recorded {signer_type} signature {signature.id} for contract {contract_id}")
        return signature

    def list_for(self, contract_id: int) -> list[ContractSignature]:
        return self.repo.list_signatures(self.db, contract_id)
