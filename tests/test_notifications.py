"""Contract notification emails"""

from unittest.mock import AsyncMock, patch

import pytest

from propodocs import email_service
from propodocs.email_templates import contract_ready_template
from propodocs.services.notification_service import ContractNotifier, ContractSummary, signing_link


def _summary(**overrides):
    fields = {
        "contract_id": 12,
        "title": "Retainer",
        "client_name": "Acme Corp",
        "client_email": "buyer@acme.test",
        "total_value": 24500,
        "signing_link": signing_link("tok123"),
        "owner_email": "owner@example.com",
        "owner_name": "Olivia",
        "signer_name": "Carla",
    }
    fields.update(overrides)
    return ContractSummary(**fields)


class TestContractNotifier:
    async def test_contract_sent_emails_client(self):
        with patch.object(email_service, "send_contract_email", new=AsyncMock()) as send:
            assert await ContractNotifier().contract_sent(_summary()) is True
        kwargs = send.await_args.kwargs
        assert kwargs["to"] == "buyer@acme.test"
        assert kwargs["signing_link"].endswith("/c/tok123")

    async def test_contract_signed_emails_owner(self):
        with patch.object(email_service, "send_contract_signed_notification", new=AsyncMock()) as send:
            assert await ContractNotifier().contract_signed(_summary()) is True
        kwargs = send.await_args.kwargs
        assert kwargs["to"] == "owner@example.com"
        assert kwargs["dashboard_url"].endswith("/contracts/12")

    async def test_missing_recipient_is_skipped(self):
        with patch.object(email_service, "send_contract_email", new=AsyncMock()) as send:
            assert await ContractNotifier().contract_sent(_summary(client_email=None)) is False
        send.assert_not_awaited()

    async def test_delivery_errors_are_swallowed(self):
        failing = AsyncMock(side_effect=RuntimeError("resend down"))
        with patch.object(email_service, "send_contract_email", new=failing):
            assert await ContractNotifier().contract_sent(_summary()) is False


class TestEmailService:
    async def test_send_requires_api_key(self):
        with patch.object(email_service, "RESEND_API_KEY", None):
            with pytest.raises(email_service.EmailNotConfigured):
                await email_service.send_email("a@b.test", "Subject", "<mjml></mjml>")

    def test_templates_escape_user_text(self):
        mjml = contract_ready_template(
            client_name="<img src=x onerror=alert(1)>",
            contract_title="Deal & Co",
            signing_link="https://app.test/c/tok",
            total_value=1500,
        )
        assert "<img src=x" not in mjml
        assert "Deal &amp; Co" in mjml
        assert "https://app.test/c/tok" in mjml
