from typing import Any, Dict, List

from rolegate.db.document_store import USERS, DocumentStore
from rolegate.schemas.accounts import VerifiedAccount
from rolegate.services.challenge_store import ChallengeStore

RECENT_LIMIT = 5


def collect_stats(store: DocumentStore, challenges: ChallengeStore) -> Dict[str, Any]:
    """Dashboard numbers: users, verified users, asset count distribution,
    latest verifications and open challenges."""
    accounts = [VerifiedAccount.from_record(doc, subject_id=sid) for sid, doc in store.get_all(USERS)]

    distribution: Dict[str, int] = {}
    for account in accounts:
        if account.asset_count is not None:
            key = str(account.asset_count)
            distribution[key] = distribution.get(key, 0) + 1

    recent = sorted(
        (a for a in accounts if a.verification_date),
        key=lambda a: a.verification_date,
        reverse=True,
    )[:RECENT_LIMIT]
    recent_verifications: List[Dict[str, Any]] = [
        {
            "subject_id": a.subject_id,
            "wallet": a.wallet_address,
            "date": a.verification_date,
            "asset_count": a.asset_count or 0,
        }
        for a in recent
    ]

    return {
        "total_users": len(accounts),
        "verified_users": sum(1 for a in accounts if a.verified),
        "asset_distribution": distribution,
        "recent_verifications": recent_verifications,
        "pending_verifications": challenges.count(),
    }
