from rolegate.db.document_store import PENDING_VERIFICATIONS
from tests.fakes import make_challenge


class TestChallengeStore:
    """Test cases for the two tier challenge storage"""

    def test_put_writes_both_tiers(self, challenge_store, cache, store):
        challenge = make_challenge()
        challenge_store.put(challenge)
        assert cache.get("challenge:42") == challenge.to_doc()
        assert store.get(PENDING_VERIFICATIONS, "42") == challenge.to_doc()

    def test_get_reads_cache_first(self, challenge_store, store):
        challenge = make_challenge()
        challenge_store.put(challenge)
        store.delete(PENDING_VERIFICATIONS, "42")
        assert challenge_store.get("42") == challenge

    def test_durable_fallback_repopulates_cache(self, challenge_store, cache):
        """A cache miss is served from the durable copy and cached again"""
        challenge = make_challenge()
        challenge_store.put(challenge)
        cache.delete("challenge:42")
        assert challenge_store.get("42") == challenge
        assert cache.get("challenge:42") == challenge.to_doc()

    def test_last_write_wins(self, challenge_store):
        challenge_store.put(make_challenge(nonce="first"))
        challenge_store.put(make_challenge(nonce="second"))
        assert challenge_store.get("42").nonce == "second"
        assert challenge_store.count() == 1

    def test_delete_clears_both_tiers(self, challenge_store, cache, store):
        challenge_store.put(make_challenge())
        challenge_store.delete("42")
        assert challenge_store.get("42") is None
        assert cache.get("challenge:42") is None
        assert store.get(PENDING_VERIFICATIONS, "42") is None

    def test_unreadable_cache_entry_falls_back(self, challenge_store, cache):
        challenge = make_challenge()
        challenge_store.put(challenge)
        cache.set("challenge:42", {"garbage": True})
        assert challenge_store.get("42") == challenge

    def test_purge_expired(self, challenge_store, clock):
        now = int(clock())
        challenge_store.put(make_challenge("old", issued_at=now - 700))
        challenge_store.put(make_challenge("fresh", issued_at=now))
        assert challenge_store.purge_expired() == 1
        assert challenge_store.get("old") is None
        assert challenge_store.get("fresh") is not None
