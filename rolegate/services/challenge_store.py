"""
Two tier storage for open verification challenges.

The durable store (pending_verifications collection) is the source of truth,
the hybrid cache in front of it only saves round trips:
- read-through: cache first, on a miss read the durable copy and put it back in the cache
- write-through: every write lands in both tiers
- delete: removes both copies
One active challenge per subject, a new write replaces the previous one.
"""

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional

from rolegate.core.cache import HybridCacheManager
from rolegate.core.locks import KeyedLocks
from rolegate.db.document_store import PENDING_VERIFICATIONS, DocumentStore

logger = logging.getLogger(__name__)

CACHE_PREFIX = "challenge:"


@dataclass(frozen=True)
class Challenge:
    subject_id: str
    claimed_wallet: str
    message: str
    nonce: str
    issued_at: int
    expires_at: int

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def to_doc(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_doc(cls, subject_id: str, doc: Dict[str, Any]) -> "Challenge":
        return cls(
            subject_id=doc.get("subject_id") or subject_id,
            claimed_wallet=doc["claimed_wallet"],
            message=doc["message"],
            nonce=doc["nonce"],
            issued_at=int(doc["issued_at"]),
            expires_at=int(doc["expires_at"]),
        )


class ChallengeStore:
    def __init__(
        self,
        cache: HybridCacheManager,
        store: DocumentStore,
        clock: Callable[[], float] = time.time,
    ):
        self._cache = cache
        self._store = store
        self._locks = KeyedLocks()
        self._clock = clock

    def lock(self, subject_id: str):
        """Per-subject lock shared with put/delete, hold it to read-check-consume atomically."""
        return self._locks.hold(subject_id)

    @staticmethod
    def _cache_key(subject_id: str) -> str:
        return f"{CACHE_PREFIX}{subject_id}"

    def put(self, challenge: Challenge) -> None:
        """Store a challenge in both tiers, replacing any earlier one for the subject."""
        doc = challenge.to_doc()
        ttl = max(challenge.expires_at - int(self._clock()), 1)
        with self._locks.hold(challenge.subject_id):
            self._store.set(PENDING_VERIFICATIONS, challenge.subject_id, doc)
            self._cache.set(self._cache_key(challenge.subject_id), doc, ttl)

    def get(self, subject_id: str) -> Optional[Challenge]:
        with self._locks.hold(subject_id):
            return self._get(subject_id)

    def _get(self, subject_id: str) -> Optional[Challenge]:
        cached = self._cache.get(self._cache_key(subject_id))
        if cached is not None:
            try:
                return Challenge.from_doc(subject_id, cached)
            except (KeyError, TypeError, ValueError):
                logger.warning("dropping unreadable cached challenge for %s", subject_id)
                self._cache.delete(self._cache_key(subject_id))

        doc = self._store.get(PENDING_VERIFICATIONS, subject_id)
        if doc is None:
            return None
        challenge = Challenge.from_doc(subject_id, doc)
        ttl = max(challenge.expires_at - int(self._clock()), 1)
        self._cache.set(self._cache_key(subject_id), challenge.to_doc(), ttl)
        return challenge

    def delete(self, subject_id: str) -> None:
        with self._locks.hold(subject_id):
            self._cache.delete(self._cache_key(subject_id))
            self._store.delete(PENDING_VERIFICATIONS, subject_id)

    def count(self) -> int:
        return self._store.count(PENDING_VERIFICATIONS)

    def purge_expired(self, now: Optional[float] = None) -> int:
        """Delete every expired challenge, returns how many were removed."""
        now = self._clock() if now is None else now
        removed = 0
        for subject_id, doc in self._store.get_all(PENDING_VERIFICATIONS):
            try:
                expires_at = int(doc["expires_at"])
            except (KeyError, TypeError, ValueError):
                expires_at = 0
            if now > expires_at:
                self.delete(subject_id)
                removed += 1
        if removed:
            logger.info("purged %d expired challenges", removed)
        return removed
