import logging
import time
from typing import Callable

from rolegate.db.document_store import USERS, DocumentStore
from rolegate.services.challenge_store import ChallengeStore

logger = logging.getLogger(__name__)


def reset_account(
    store: DocumentStore,
    challenges: ChallengeStore,
    subject_id: str,
    clock: Callable[[], float] = time.time,
) -> bool:
    """Unlink the wallet of one member so they can verify again.

    The account keeps its document (history, community roles) but loses the
    verified flag, the wallet and the asset count. Any open challenge is dropped.
    Returns False when the member has no account.
    """
    # same lock as verify, a reset never interleaves with a signature check
    with challenges.lock(subject_id):
        if store.get(USERS, subject_id) is None:
            return False
        store.set(
            USERS,
            subject_id,
            {
                "verified": False,
                "wallet_address": None,
                "asset_count": 0,
                "last_updated": int(clock()),
            },
            merge=True,
        )
        challenges.delete(subject_id)

    logger.info("account of subject %s reset", subject_id)
    return True
