"""Contract lifecycle through ContractService"""

from datetime import timedelta
from unittest.mock import patch

import pytest

from conftest import SIGNATURE_IMAGE, FakeNotifier, expire
from propodocs.domain.contracts.errors import (
    AlreadySigned,
    Cancelled,
    ClientNotYetSigned,
    Expired,
    Forbidden,
    InvalidState,
    NotFound,
    ValidationFailed,
)
from propodocs.domain.contracts.service import ContractService
from propodocs.models import Contract, ContractSignature

STATUS_ORDER = ["draft", "sent", "viewed", "signed", "completed"]


async def _client_sign(service, contract, name="Carla Client"):
    return await service.sign_by_token(
        contract.access_token,
        signer_name=name,
        signer_email="carla@acme.test",
        signature_data=SIGNATURE_IMAGE,
        ip_address="203.0.113.7",
        user_agent="pytest",
    )


class TestHappyPath:
    async def test_full_lifecycle(self, service, owner, make_contract, notifier, db):
        seen = []
        contract = make_contract()
        seen.append(contract.status)
        assert contract.status == "draft"
        assert contract.sent_at is None

        contract = await service.send(contract.id, owner)
        seen.append(contract.status)
        assert contract.sent_at is not None
        assert len(notifier.sent) == 1
        assert notifier.sent[0].signing_link.endswith(f"/c/{contract.access_token}")

        contract = service.view_by_token(contract.access_token)
        seen.append(contract.status)
        assert contract.viewed_at is not None

        contract = await _client_sign(service, contract)
        seen.append(contract.status)
        assert contract.client_signed_at is not None
        assert len(notifier.signed) == 1
        assert notifier.signed[0].signer_name == "Carla Client"

        contract = service.counter_sign(contract.id, owner, SIGNATURE_IMAGE, "198.51.100.1", "pytest")
        seen.append(contract.status)
        assert contract.user_signed_at is not None
        assert contract.user_signed_at >= contract.client_signed_at

        assert seen == STATUS_ORDER
        signatures = service.signatures_for(contract)
        assert [s.signer_type for s in signatures] == ["client", "provider"]
        assert signatures[1].signer_name == "Olivia Owner"

    async def test_second_view_does_not_restamp(self, service, sent_contract):
        contract = await sent_contract()
        first = service.view_by_token(contract.access_token)
        viewed_at = first.viewed_at
        again = service.view_by_token(contract.access_token)
        assert again.status == "viewed"
        assert again.viewed_at == viewed_at


class TestSend:
    async def test_resend_keeps_status_and_renotifies(self, service, owner, sent_contract, notifier):
        contract = await sent_contract()
        service.view_by_token(contract.access_token)
        contract = await service.send(contract.id, owner)
        assert contract.status == "viewed"
        assert len(notifier.sent) == 2

    async def test_send_signed_contract_is_rejected(self, service, owner, sent_contract):
        contract = await sent_contract()
        await _client_sign(service, contract)
        with pytest.raises(InvalidState):
            await service.send(contract.id, owner)

    async def test_send_expired_contract(self, service, owner, make_contract, db):
        contract = make_contract(expires_in=timedelta(days=1))
        expire(db, contract)
        with pytest.raises(Expired):
            await service.send(contract.id, owner)
        db.refresh(contract)
        assert contract.status == "draft"

    async def test_notification_failure_does_not_undo_send(self, db, owner, make_contract):
        failing = ContractService(db, notifier=FakeNotifier(fail=True))
        contract = make_contract()
        contract = await failing.send(contract.id, owner)
        assert contract.status == "sent"

    async def test_send_by_other_user_is_forbidden(self, service, other_user, make_contract):
        contract = make_contract()
        with pytest.raises(Forbidden):
            await service.send(contract.id, other_user)


class TestExpiry:
    async def test_expired_link_cannot_be_viewed_or_signed(self, service, sent_contract, db):
        contract = await sent_contract(expires_in=timedelta(days=7))
        expire(db, contract)

        with pytest.raises(Expired):
            service.view_by_token(contract.access_token)
        with pytest.raises(Expired):
            await _client_sign(service, contract)

        db.refresh(contract)
        assert contract.status == "sent"
        assert contract.client_signed_at is None
        assert db.query(ContractSignature).count() == 0

    async def test_expired_draft_reports_expired(self, service, make_contract, db):
        contract = make_contract(expires_in=timedelta(days=1))
        expire(db, contract, timedelta(hours=1))

        with pytest.raises(Expired) as exc_info:
            service.view_by_token(contract.access_token)
        assert not isinstance(exc_info.value, Cancelled)
        with pytest.raises(Expired):
            await _client_sign(service, contract)
        db.refresh(contract)
        assert contract.status == "draft"

    async def test_view_does_not_stamp_link_that_expired_mid_request(self, service, sent_contract, db):
        contract = await sent_contract(expires_in=timedelta(days=1))
        expire(db, contract)
        # The read-time check passes, the write-time guard must still refuse
        with patch("propodocs.domain.contracts.service.is_past", return_value=False):
            viewed = service.view_by_token(contract.access_token)
        assert viewed.status == "sent"
        assert viewed.viewed_at is None

    async def test_counter_sign_after_expiry(self, service, owner, sent_contract, db):
        contract = await sent_contract(expires_in=timedelta(days=7))
        await _client_sign(service, contract)
        expire(db, contract)
        with pytest.raises(Expired):
            service.counter_sign(contract.id, owner, SIGNATURE_IMAGE)
        db.refresh(contract)
        assert contract.status == "signed"


class TestRejections:
    async def test_duplicate_client_signature(self, service, sent_contract, db):
        contract = await sent_contract()
        await _client_sign(service, contract)
        with pytest.raises(AlreadySigned):
            await _client_sign(service, contract, name="Someone Else")
        assert db.query(ContractSignature).count() == 1

    async def test_counter_sign_before_client(self, service, owner, sent_contract, db):
        contract = await sent_contract()
        with pytest.raises(ClientNotYetSigned):
            service.counter_sign(contract.id, owner, SIGNATURE_IMAGE)
        db.refresh(contract)
        assert contract.status == "sent"
        assert contract.user_signed_at is None
        assert db.query(ContractSignature).count() == 0

    async def test_duplicate_counter_signature(self, service, owner, sent_contract):
        contract = await sent_contract()
        await _client_sign(service, contract)
        service.counter_sign(contract.id, owner, SIGNATURE_IMAGE)
        with pytest.raises(AlreadySigned):
            service.counter_sign(contract.id, owner, SIGNATURE_IMAGE)

    async def test_counter_sign_by_other_user(self, service, other_user, sent_contract):
        contract = await sent_contract()
        await _client_sign(service, contract)
        with pytest.raises(Forbidden):
            service.counter_sign(contract.id, other_user, SIGNATURE_IMAGE)

    async def test_draft_is_invisible_to_public(self, service, make_contract):
        contract = make_contract()
        with pytest.raises(NotFound):
            service.view_by_token(contract.access_token)
        with pytest.raises(NotFound):
            await _client_sign(service, contract)

    async def test_unknown_token(self, service):
        with pytest.raises(NotFound):
            service.view_by_token("does-not-exist")
        with pytest.raises(NotFound):
            service.view_by_token("../../etc/passwd")

    @pytest.mark.parametrize(
        "overrides",
        [
            {"signer_name": "   "},
            {"signature_data": ""},
            {"signature_data": "data:text/html;base64,PGgxPg=="},
            {"signature_data": "https://example.com/sig.png"},
            {"signer_email": "not-an-email"},
        ],
    )
    async def test_invalid_signature_payload_does_not_mutate(self, service, sent_contract, db, overrides):
        contract = await sent_contract()
        kwargs = {
            "signer_name": "Carla Client",
            "signer_email": "carla@acme.test",
            "signature_data": SIGNATURE_IMAGE,
            **overrides,
        }
        with pytest.raises(ValidationFailed):
            await service.sign_by_token(contract.access_token, **kwargs)
        db.refresh(contract)
        assert contract.status == "sent"
        assert contract.client_signed_at is None


class TestCancel:
    async def test_cancelled_link_reports_cancelled(self, service, owner, sent_contract):
        contract = await sent_contract()
        cancelled = service.cancel(contract.id, owner)
        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at is not None

        with pytest.raises(Cancelled) as exc_info:
            service.view_by_token(contract.access_token)
        assert isinstance(exc_info.value, Expired)
        assert exc_info.value.status_code == 410
        with pytest.raises(Cancelled):
            await _client_sign(service, contract)

    async def test_completed_contract_cannot_be_cancelled(self, service, owner, sent_contract):
        contract = await sent_contract()
        await _client_sign(service, contract)
        service.counter_sign(contract.id, owner, SIGNATURE_IMAGE)
        with pytest.raises(InvalidState):
            service.cancel(contract.id, owner)

    async def test_cancelled_contract_cannot_be_sent(self, service, owner, make_contract):
        contract = make_contract()
        service.cancel(contract.id, owner)
        with pytest.raises(InvalidState):
            await service.send(contract.id, owner)


class TestOwnerQueries:
    def test_get_contract_ownership(self, service, owner, other_user, make_contract):
        contract = make_contract()
        assert service.get_contract(contract.id, owner).id == contract.id
        with pytest.raises(Forbidden):
            service.get_contract(contract.id, other_user)
        with pytest.raises(NotFound):
            service.get_contract(99999, owner)

    async def test_list_contracts_pagination_and_filters(self, service, owner, other_user, make_contract, db):
        for i in range(3):
            make_contract(title=f"Contract {i}")
        make_contract(user=other_user)
        stale = make_contract(title="Stale", expires_in=timedelta(days=1))
        expire(db, stale)

        page = service.list_contracts(owner, page=1, limit=2)
        assert page.pagination.total == 4
        assert page.pagination.totalPages == 2
        assert len(page.contracts) == 2

        expired = service.list_contracts(owner, status="expired")
        assert [c.title for c in expired.contracts] == ["Stale"]
        assert expired.contracts[0].is_expired is True
        assert expired.contracts[0].status == "draft"

        drafts = service.list_contracts(owner, status="draft")
        assert drafts.pagination.total == 4

    async def test_delete_only_unsigned(self, service, owner, make_contract, sent_contract):
        draft = make_contract()
        assert service.delete_contract(draft.id, owner) == {"success": True}
        with pytest.raises(NotFound):
            service.get_contract(draft.id, owner)

        signed = await sent_contract()
        await _client_sign(service, signed)
        with pytest.raises(InvalidState):
            service.delete_contract(signed.id, owner)


class TestGenerateFromProposal:
    def test_builds_draft_from_proposal(self, service, owner, proposal, system_template):
        contract = service.generate_from_proposal(proposal.id, owner)

        assert contract.status == "draft"
        assert contract.title == "Growth Marketing - Service Agreement"
        assert contract.template_id == system_template.id
        assert contract.proposal_id == proposal.id
        assert contract.total_value == 2000 * 12 + 500
        assert contract.contract_term == "12 months"
        assert [(d["name"], d["price_type"]) for d in contract.deliverables] == [
            ("Growth", "monthly"),
            ("SEO", "monthly"),
            ("Ads Audit", "one-time"),
        ]
        assert "Owner Studio and Acme Corp (Acme Holdings)" in contract.content
        assert "1. **Growth**: Full-funnel campaigns - $2,000/monthly" in contract.content
        assert "Monthly: $2,000. Setup: $500. Total: $24,500." in contract.content
        assert "Governed by California." in contract.content
        assert "{{" not in contract.content

    def test_owner_default_template_wins(self, service, owner, proposal, system_template, db):
        from propodocs.models import ContractTemplate

        mine = ContractTemplate(user_id=owner.id, name="Mine", content="Hi {{client_name}}", is_default=True)
        db.add(mine)
        db.commit()
        contract = service.generate_from_proposal(proposal.id, owner)
        assert contract.template_id == mine.id
        assert contract.content == "Hi Acme Corp"

    def test_other_users_template_is_not_usable(self, service, owner, other_user, proposal, system_template, db):
        from propodocs.models import ContractTemplate

        theirs = ContractTemplate(user_id=other_user.id, name="Theirs", content="x")
        db.add(theirs)
        db.commit()
        with pytest.raises(NotFound):
            service.generate_from_proposal(proposal.id, owner, template_id=theirs.id)

    def test_missing_template(self, service, owner, proposal):
        with pytest.raises(NotFound):
            service.generate_from_proposal(proposal.id, owner)

    def test_other_users_proposal(self, service, other_user, proposal, system_template):
        with pytest.raises(NotFound):
            service.generate_from_proposal(proposal.id, other_user)

    def test_currency_strings_are_parsed(self, service, owner, proposal, system_template, db):
        proposal.calculator_data = {
            "selectedTier": {"name": "Growth", "monthlyPrice": "$1,500", "setupFee": " 250 "},
            "addOnStates": {"seo": {"name": "SEO", "price": "$300", "selected": True}},
        }
        db.commit()
        contract = service.generate_from_proposal(proposal.id, owner)
        assert contract.total_value == 1500 * 12 + 250
        assert [d["price"] for d in contract.deliverables] == [1500, 300]

    @pytest.mark.parametrize(
        "calculator_data",
        [
            {"selectedTier": {"name": "Growth", "monthlyPrice": "fifteen hundred"}},
            {"selectedTier": {"name": "Growth", "monthlyPrice": True}},
            {"selectedTier": "Growth"},
            {"addOnStates": {"seo": "selected"}},
            {"addOnStates": {"seo": {"name": "SEO", "price": [300], "selected": True}}},
            ["not", "a", "mapping"],
        ],
    )
    def test_malformed_calculator_data(self, service, owner, proposal, system_template, db, calculator_data):
        proposal.calculator_data = calculator_data
        db.commit()
        with pytest.raises(ValidationFailed):
            service.generate_from_proposal(proposal.id, owner)
        assert db.query(Contract).count() == 0

    def test_malformed_calculator_data_over_http(self, client, auth_headers, proposal, system_template, db):
        proposal.calculator_data = {"selectedTier": {"name": "Growth", "monthlyPrice": "n/a"}}
        db.commit()
        response = client.post(f"/contracts/from-proposal/{proposal.id}", headers=auth_headers)
        assert response.status_code == 422
        assert response.json()["code"] == "validation_failed"
