"""
Contract notifications
Best-effort email side effects fired after contract transitions commit.
A failed notification is logged and never undoes the transition.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .. import email_service
from ..config import FRONTEND_URL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContractSummary:
    contract_id: int
    title: str
    client_name: str
    client_email: Optional[str]
    total_value: Optional[float]
    signing_link: str
    owner_email: Optional[str] = None
    owner_name: Optional[str] = None
    signer_name: Optional[str] = None


def signing_link(access_token: str) -> str:
    return f"{FRONTEND_URL.rstrip('/')}/c/{access_token}"


def dashboard_link(contract_id: int) -> str:
    return f"{FRONTEND_URL.rstrip('/')}/contracts/{contract_id}"


class ContractNotifier:
    """Email notifications for contract events"""

    async def contract_sent(self, summary: ContractSummary) -> bool:
        return await self._deliver(
            "contract-sent",
            summary.client_email,
            email_service.send_contract_email,
            to=summary.client_email,
            client_name=summary.client_name,
            contract_title=summary.title,
            signing_link=summary.signing_link,
            total_value=summary.total_value,
            sender_name=summary.owner_name,
        )

    async def contract_signed(self, summary: ContractSummary) -> bool:
        return await self._deliver(
            "contract-signed",
            summary.owner_email,
            email_service.send_contract_signed_notification,
            to=summary.owner_email,
            owner_name=summary.owner_name or "there",
            client_name=summary.client_name,
            contract_title=summary.title,
            signer_name=summary.signer_name or summary.client_name,
            dashboard_url=dashboard_link(summary.contract_id),
        )

    @staticmethod
    async def _deliver(notification_type: str, recipient: Optional[str], email_func, **email_kwargs) -> bool:
        if not recipient:
            logger.debug(f"⚠️ No email address for {notification_type} notification")
            return False
        try:
            logger.info(f"📧 Sending {notification_type} email to {recipient}")
            await email_func(**email_kwargs)
            logger.info(f"✅ {notification_type} email sent successfully to {recipient}")
            return True
        except Exception as e:
            logger.error(f"❌ Failed to send {notification_type} email to {recipient}: {e}")
            return False
