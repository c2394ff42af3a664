from rolegate.db.document_store import USERS
from rolegate.services.stats import collect_stats
from tests.fakes import make_challenge


class TestCollectStats:
    """Test cases for the admin dashboard numbers"""

    def test_empty(self, store, challenge_store):
        assert collect_stats(store, challenge_store) == {
            "total_users": 0,
            "verified_users": 0,
            "asset_distribution": {},
            "recent_verifications": [],
            "pending_verifications": 0,
        }

    def test_counts(self, store, challenge_store):
        for index in range(7):
            store.set(
                USERS,
                f"s{index}",
                {
                    "wallet_address": f"0x{index}",
                    "verified": True,
                    "verification_date": 1000 + index,
                    "asset_count": index % 2,
                },
            )
        store.set(USERS, "pending", {"verified": False})
        challenge_store.put(make_challenge("pending"))

        stats = collect_stats(store, challenge_store)

        assert stats["total_users"] == 8
        assert stats["verified_users"] == 7
        assert stats["asset_distribution"] == {"0": 4, "1": 3}
        assert [r["subject_id"] for r in stats["recent_verifications"]] == ["s6", "s5", "s4", "s3", "s2"]
        assert stats["recent_verifications"][0] == {
            "subject_id": "s6",
            "wallet": "0x6",
            "date": 1006,
            "asset_count": 0,
        }
        assert stats["pending_verifications"] == 1
