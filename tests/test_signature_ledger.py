"""Signature ledger: guarded appends under races and stale reads"""

import threading

import pytest

from conftest import SIGNATURE_IMAGE, make_file_database
from propodocs.domain.contracts.errors import AlreadySigned, ClientNotYetSigned, NotFound
from propodocs.domain.contracts.ledger import CLIENT, PROVIDER, SignatureLedger, transition_for
from propodocs.domain.contracts.schemas import SignaturePayload
from propodocs.models import Contract, ContractSignature, User
from propodocs.utils.dates import utcnow


def _payload(name="Carla Client"):
    return SignaturePayload(signer_name=name, signer_email="carla@acme.test", signature_data=SIGNATURE_IMAGE)


def _seed_sent_contract(database) -> int:
    session = database.session()
    try:
        user = User(email="owner@example.com", full_name="Olivia Owner")
        session.add(user)
        session.flush()
        contract = Contract(
            user_id=user.id,
            client_name="Acme Corp",
            title="Retainer",
            content="Terms",
            deliverables=[],
            access_token="tok-" + "a" * 40,
            status="sent",
            sent_at=utcnow(),
        )
        session.add(contract)
        session.commit()
        return contract.id
    finally:
        session.close()


class TestTransitions:
    def test_client_transition_targets_signed(self):
        _, patch = transition_for(CLIENT, utcnow())
        assert patch["status"] == "signed"
        assert "client_signed_at" in patch

    def test_provider_transition_targets_completed(self):
        _, patch = transition_for(PROVIDER, utcnow())
        assert patch["status"] == "completed"
        assert "user_signed_at" in patch

    def test_unknown_signer_type(self):
        with pytest.raises(ValueError):
            transition_for("witness", utcnow())


class TestAppend:
    def test_unknown_contract(self, db):
        with pytest.raises(NotFound):
            SignatureLedger(db).append(424242, CLIENT, _payload(), utcnow())

    def test_provider_before_client(self, database):
        contract_id = _seed_sent_contract(database)
        session = database.session()
        try:
            with pytest.raises(ClientNotYetSigned):
                SignatureLedger(session).append(contract_id, PROVIDER, _payload("Olivia"), utcnow())
            assert session.query(ContractSignature).count() == 0
        finally:
            session.close()

    def test_stale_snapshot_cannot_double_sign(self, tmp_path):
        database = make_file_database(tmp_path / "stale.db")
        try:
            contract_id = _seed_sent_contract(database)

            # Session A reads the contract while it is still unsigned
            session_a = database.session()
            stale = session_a.get(Contract, contract_id)
            assert stale.client_signed_at is None
            session_a.commit()

            session_b = database.session()
            SignatureLedger(session_b).append(contract_id, CLIENT, _payload("First"), utcnow())
            session_b.close()

            # A still holds its old snapshot but the guarded write sees the committed state
            with pytest.raises(AlreadySigned):
                SignatureLedger(session_a).append(contract_id, CLIENT, _payload("Second"), utcnow())
            session_a.close()

            check = database.session()
            rows = check.query(ContractSignature).all()
            assert [r.signer_name for r in rows] == ["First"]
            check.close()
        finally:
            database.dispose()


class TestConcurrentSigning:
    WORKERS = 5

    def test_exactly_one_signer_wins(self, tmp_path):
        database = make_file_database(tmp_path / "race.db")
        try:
            contract_id = _seed_sent_contract(database)
            barrier = threading.Barrier(self.WORKERS)
            outcomes = []
            lock = threading.Lock()

            def attempt(i):
                session = database.session()
                try:
                    barrier.wait()
                    SignatureLedger(session).append(contract_id, CLIENT, _payload(f"Signer {i}"), utcnow())
                    result = "ok"
                except AlreadySigned:
                    result = "already_signed"
                except Exception as e:
                    result = f"error: {type(e).__name__}: {e}"
                finally:
                    session.close()
                with lock:
                    outcomes.append(result)

            threads = [threading.Thread(target=attempt, args=(i,)) for i in range(self.WORKERS)]
            for t in threads:
                t.start()
            for t in threads:
                t.join(timeout=60)

            assert sorted(outcomes) == ["already_signed"] * (self.WORKERS - 1) + ["ok"]

            check = database.session()
            try:
                assert check.query(ContractSignature).filter_by(signer_type=CLIENT).count() == 1
                contract = check.get(Contract, contract_id)
                assert contract.status == "signed"
                assert contract.client_signed_at is not None
            finally:
                check.close()
        finally:
            database.dispose()
