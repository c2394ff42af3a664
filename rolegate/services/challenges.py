"""
Wallet ownership challenges.

ChallengeIssuer builds a unique message for a member to sign and stores it,
SignatureVerifier checks the returned signature and promotes the member to a
verified wallet.

Flow:
1. issue(subject, community, wallet) -> Challenge (message + nonce, expires in 10 minutes)
2. member signs Challenge.message with the wallet (personal_sign)
3. verify(subject, signature) -> VerificationResult
   - success: challenge consumed, users/<subject> holds the verified wallet
   - failure: typed error, the member restarts the flow
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from rolegate.core.config import settings
from rolegate.core.errors import (
    AddressMismatch,
    Expired,
    InvalidAddress,
    MalformedSignature,
    NoChallenge,
    RateLimited,
    VerificationError,
)
from rolegate.core.wallet_auth import (
    build_challenge_message,
    generate_nonce,
    is_valid_address,
    recover_signer,
    to_checksum,
)
from rolegate.db.document_store import USERS, DocumentStore
from rolegate.services.challenge_store import Challenge, ChallengeStore
from rolegate.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

VERIFICATION_METHOD = "signature"


class ChallengeIssuer:
    def __init__(
        self,
        challenges: ChallengeStore,
        rate_limiter: RateLimiter,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._challenges = challenges
        self._rate_limiter = rate_limiter
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.CHALLENGE_TTL_SECONDS
        self._clock = clock

    def issue(
        self,
        subject_id: str,
        display_name: str,
        community_name: str,
        claimed_wallet: str,
    ) -> Challenge:
        """
        Create the challenge a member has to sign.

        Raises:
            InvalidAddress: claimed_wallet is not a well formed address
            RateLimited: too many challenges for this subject in the window
        """
        if not is_valid_address(claimed_wallet):
            raise InvalidAddress(f"not a wallet address: {claimed_wallet!r}")

        if not self._rate_limiter.allow(subject_id):
            logger.info("rate limited challenge request for subject %s", subject_id)
            raise RateLimited()

        wallet = to_checksum(claimed_wallet)
        nonce = generate_nonce()
        issued_at = int(self._clock())
        message = build_challenge_message(
            display_name=display_name,
            subject_id=subject_id,
            wallet_address=wallet,
            community_name=community_name,
            nonce=nonce,
            timestamp=issued_at,
        )
        challenge = Challenge(
            subject_id=subject_id,
            claimed_wallet=wallet,
            message=message,
            nonce=nonce,
            issued_at=issued_at,
            expires_at=issued_at + self.ttl_seconds,
        )
        self._challenges.put(challenge)
        logger.info("issued challenge for subject %s wallet %s", subject_id, wallet)
        return challenge


@dataclass(frozen=True)
class VerificationResult:
    success: bool
    wallet_address: Optional[str] = None
    error: Optional[VerificationError] = None

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error else None

    @property
    def user_message(self) -> Optional[str]:
        return self.error.user_message if self.error else None


class SignatureVerifier:
    def __init__(
        self,
        challenges: ChallengeStore,
        store: DocumentStore,
        clock: Callable[[], float] = time.time,
    ):
        self._challenges = challenges
        self._store = store
        self._clock = clock

    def verify(self, subject_id: str, signature: str) -> VerificationResult:
        """Check a signature against the subject's open challenge.

        Never raises a VerificationError, failures come back in the result.
        """
        try:
            # one verification per subject at a time, a challenge is consumed at most once
            with self._challenges.lock(subject_id):
                wallet = self._verify(subject_id, signature)
        except VerificationError as exc:
            logger.info("verification failed for subject %s: %s", subject_id, exc.code)
            return VerificationResult(success=False, error=exc)
        return VerificationResult(success=True, wallet_address=wallet)

    def _verify(self, subject_id: str, signature: str) -> str:
        challenge = self._challenges.get(subject_id)
        if challenge is None:
            raise NoChallenge()

        now = self._clock()
        if challenge.is_expired(now):
            self._challenges.delete(subject_id)
            raise Expired()

        try:
            signer = recover_signer(challenge.message, signature)
        except ValueError as exc:
            raise MalformedSignature(str(exc)) from exc

        if signer.lower() != challenge.claimed_wallet.lower():
            raise AddressMismatch(f"signed by {signer}, expected {challenge.claimed_wallet}")

        self._challenges.delete(subject_id)
        self._store.set(
            USERS,
            subject_id,
            {
                "wallet_address": challenge.claimed_wallet,
                "verified": True,
                "verification_date": int(now),
                "verification_method": VERIFICATION_METHOD,
            },
            merge=True,
        )
        logger.info("subject %s verified wallet %s", subject_id, challenge.claimed_wallet)
        return challenge.claimed_wallet
