import asyncio

from rolegate.core.errors import NoChallenge
from rolegate.db.document_store import USERS
from tests.fakes import HOLDER_ROLE, WHALE_ROLE, balance_error, sign


def start(issuer, account):
    return issuer.issue("42", "alice", "Bera Club", account.address)


class TestVerificationService:
    """Test cases for verify + immediate role assignment"""

    def test_complete_assigns_tier(self, services, issuer, balances, community, store, alice):
        community.add_member("42")
        balances.set_balance(alice.address, 12)
        challenge = start(issuer, alice)

        outcome = asyncio.run(services.verification.complete("42", sign(alice, challenge.message)))

        assert outcome.result.success
        assert outcome.asset_count == 12
        assert outcome.tier.name == "Whale"
        assert community.member("42").roles == {WHALE_ROLE}
        account = store.get(USERS, "42")
        assert account["verified"] is True
        assert account["asset_count"] == 12

    def test_failed_signature_skips_balance(self, services, balances, alice):
        outcome = asyncio.run(services.verification.complete("42", sign(alice, "x")))
        assert not outcome.result.success
        assert isinstance(outcome.result.error, NoChallenge)
        assert balances.calls == []

    def test_balance_error_keeps_verification(self, services, issuer, balances, community, store, alice):
        """Wallet stays verified, roles wait for the next batch run"""
        community.add_member("42", {HOLDER_ROLE})
        balances.set_balance(alice.address, balance_error(alice.address))
        challenge = start(issuer, alice)

        outcome = asyncio.run(services.verification.complete("42", sign(alice, challenge.message)))

        assert outcome.result.success
        assert outcome.tier is None
        assert "rpc unavailable" in outcome.balance_error
        assert store.get(USERS, "42")["verified"] is True
        assert community.calls == []
