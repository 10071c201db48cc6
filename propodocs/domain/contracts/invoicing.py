"""Invoice derivation from completed contracts"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import Contract
from ...models_invoice import Invoice
from ...utils.dates import utcnow
from .errors import InvalidState
from .repository import ContractRepository

logger = logging.getLogger(__name__)

PAYMENT_TERMS_DAYS = 30


def build_line_items(deliverables: list[dict]) -> list[dict]:
    """One line item per deliverable; price becomes unit price and amount"""
    items = []
    for d in deliverables or []:
        price = float(d.get("price") or 0)
        items.append(
            {
                "description": d.get("name") or "Service",
                "quantity": 1,
                "unit_price": price,
                "amount": price,
                "price_type": d.get("price_type") or "one-time",
            }
        )
    return items


def generate_invoice_number(db: Session, user_id: int, now: datetime) -> str:
    """Generate unique invoice number"""
    year = now.year
    count = ContractRepository.count_invoices_since(db, user_id, datetime(year, 1, 1)) + 1
    return f"INV-{year}-{user_id:04d}-{count:04d}"


def derive_invoice(db: Session, contract: Contract) -> tuple[Invoice, bool]:
    """
    Project a completed contract into a draft invoice.

    Idempotent per contract: if an invoice already exists for the contract it
    is returned with ``created=False`` instead of creating a duplicate.
    """
    repo = ContractRepository()
    if contract.status != "completed":
        raise InvalidState("Invoices can only be created from completed contracts")

    existing = repo.get_invoice_for_contract(db, contract.id)
    if existing:
        logger.info(f"♻️ Invoice {existing.id} already exists for contract {contract.id}")
        return existing, False

    now = utcnow()
    line_items = build_line_items(contract.deliverables)
    subtotal = round(sum(item["amount"] for item in line_items), 2)

    invoice_data = {
        "user_id": contract.user_id,
        "contract_id": contract.id,
        "title": f"Invoice - {contract.client_name or 'Client'}",
        "client_name": contract.client_name or "",
        "client_email": contract.client_email,
        "client_company": contract.client_company,
        "client_address": contract.client_address,
        "line_items": line_items,
        "subtotal": subtotal,
        "tax_rate": 0,
        "tax_amount": 0,
        "total": subtotal,
        "currency": "USD",
        "due_date": (now + timedelta(days=PAYMENT_TERMS_DAYS)).date(),
        "status": "draft",
        "notes": f"Invoice generated from Contract: {contract.title}",
    }

    for attempt in range(3):
        invoice_data["invoice_number"] = generate_invoice_number(db, contract.user_id, now)
        try:
            invoice = repo.create_invoice(db, **invoice_data)
            logger.info(f"✅ Invoice {invoice.invoice_number} created from contract {contract.id}")
            return invoice, True
        except IntegrityError:
            db.rollback()
            # A concurrent call may have created the contract's invoice first
            existing = repo.get_invoice_for_contract(db, contract.id)
            if existing:
                return existing, False
            # Number taken by a concurrent invoice; the recount picks the next one
            logger.warning(f"⚠️ Invoice number collision, retrying (attempt {attempt + 1})")

    raise InvalidState("Could not allocate an invoice number")
