"""
Member facing verification flow.

complete(): verify the signature, then read the wallet balance and assign
the tier role straight away instead of waiting for the next batch run.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from rolegate.core.errors import BalanceFetchError
from rolegate.services.batch_runner import BatchVerificationRunner
from rolegate.services.challenges import SignatureVerifier, VerificationResult
from rolegate.services.reconciler import RoleReconciler
from rolegate.services.tiers import Tier

logger = logging.getLogger(__name__)


@dataclass
class VerificationOutcome:
    result: VerificationResult
    asset_count: Optional[int] = None
    tier: Optional[Tier] = None
    balance_error: Optional[str] = None


class VerificationService:
    def __init__(
        self,
        verifier: SignatureVerifier,
        runner: BatchVerificationRunner,
        reconciler: RoleReconciler,
    ):
        self._verifier = verifier
        self._runner = runner
        self._reconciler = reconciler

    async def complete(self, subject_id: str, signature: str) -> VerificationOutcome:
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, self._verifier.verify, subject_id, signature)
        if not result.success:
            return VerificationOutcome(result=result)

        try:
            count = await self._runner.fetch_balance(result.wallet_address)
        except BalanceFetchError as exc:
            # wallet stays verified, the next batch run assigns the role
            logger.warning("verified %s but balance check failed: %s", subject_id, exc)
            return VerificationOutcome(result=result, balance_error=str(exc))

        tier = await self._reconciler.reconcile(subject_id, count)
        return VerificationOutcome(result=result, asset_count=count, tier=tier)
