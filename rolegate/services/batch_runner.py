"""
Batch verification of every subject with a wallet.

run_all():
1. load users/*, keep the ones with a wallet address
2. fetch balances in batches (BatchPacer): batches run strictly one after
   another with a delay in between, wallets inside a batch are fetched
   concurrently; a failed fetch counts as balance 0 and never stops the batch
3. per subject: count changed -> reconcile roles (successful),
   count unchanged -> touch last_updated (unchanged), exception -> failed
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar

from rolegate.core.config import settings
from rolegate.core.errors import BalanceFetchError, StoreUnavailableError, TierConfigError
from rolegate.db.document_store import USERS, DocumentStore
from rolegate.schemas.accounts import ReconciliationResult, SubjectOutcome
from rolegate.services.community import BalanceSource
from rolegate.services.reconciler import RoleReconciler

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class PacedResult(Generic[T, R]):
    item: T
    value: Optional[R] = None
    error: Optional[Exception] = None


class BatchPacer:
    """Run a coroutine over items in fixed size batches with a pause between batches."""

    def __init__(
        self,
        batch_size: Optional[int] = None,
        delay_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.batch_size = max(int(batch_size or settings.BATCH_SIZE), 1)
        self.delay_seconds = delay_seconds if delay_seconds is not None else settings.BATCH_DELAY_SECONDS
        self._sleep = sleep

    def batches(self, items: Sequence[T]) -> List[List[T]]:
        return [list(items[i:i + self.batch_size]) for i in range(0, len(items), self.batch_size)]

    async def run(
        self, items: Sequence[T], worker: Callable[[T], Awaitable[R]]
    ) -> List[PacedResult[T, R]]:
        results: List[PacedResult[T, R]] = []
        batches = self.batches(items)
        for index, batch in enumerate(batches):
            batch_results = await asyncio.gather(*(self._capture(worker, item) for item in batch))
            results.extend(batch_results)
            if index < len(batches) - 1 and self.delay_seconds > 0:
                await self._sleep(self.delay_seconds)
        return results

    @staticmethod
    async def _capture(worker: Callable[[T], Awaitable[R]], item: T) -> PacedResult[T, R]:
        try:
            return PacedResult(item=item, value=await worker(item))
        except Exception as exc:
            return PacedResult(item=item, error=exc)


class BatchVerificationRunner:
    def __init__(
        self,
        store: DocumentStore,
        balances: BalanceSource,
        reconciler: RoleReconciler,
        pacer: Optional[BatchPacer] = None,
        balance_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._balances = balances
        self._reconciler = reconciler
        self.pacer = pacer or BatchPacer()
        self._balance_timeout = (
            balance_timeout if balance_timeout is not None else settings.BALANCE_TIMEOUT_SECONDS
        )
        self._clock = clock

    async def fetch_balance(self, address: str) -> int:
        try:
            balance = await asyncio.wait_for(
                self._balances.get_balance(address), timeout=self._balance_timeout
            )
        except asyncio.TimeoutError as exc:
            raise BalanceFetchError(address, f"timed out after {self._balance_timeout}s") from exc
        return int(balance)

    async def fetch_balances(self, addresses: Sequence[str]) -> Tuple[Dict[str, int], int]:
        """Balances keyed by lower-cased address, plus the number of failed fetches."""
        logger.info(
            "fetching %d balances in batches of %d", len(addresses), self.pacer.batch_size
        )
        balances: Dict[str, int] = {}
        errors = 0
        for result in await self.pacer.run(addresses, self.fetch_balance):
            if result.error is not None:
                logger.warning("failed to get balance for %s: %s", result.item, result.error)
                balances[result.item.lower()] = 0
                errors += 1
            else:
                balances[result.item.lower()] = result.value
        return balances, errors

    async def run_all(self) -> ReconciliationResult:
        """Reconcile every subject with a wallet. Store or tier config errors abort the run."""
        logger.info("starting verification of all users")
        # fail fast on a broken tier file before touching anyone
        self._reconciler.calculator.tiers()

        loop = asyncio.get_running_loop()
        users = await loop.run_in_executor(None, self._store.get_all, USERS)
        result = ReconciliationResult(total=len(users))

        with_wallets = [(sid, doc) for sid, doc in users if doc.get("wallet_address")]
        logger.info("found %d users, %d with wallet addresses", len(users), len(with_wallets))
        if not with_wallets:
            return result

        addresses: List[str] = []
        seen = set()
        for _, doc in with_wallets:
            key = doc["wallet_address"].lower()
            if key not in seen:
                seen.add(key)
                addresses.append(doc["wallet_address"])

        balances, result.balance_errors = await self.fetch_balances(addresses)

        for subject_id, doc in with_wallets:
            outcome = await self._reconcile_subject(subject_id, doc, balances)
            result.outcomes.append(outcome)
            result.processed += 1
            if not outcome.success:
                result.failed += 1
            elif outcome.changed:
                result.successful += 1
            else:
                result.unchanged += 1

        logger.info(
            "completed verification of all users: %d updated, %d unchanged, %d failed",
            result.successful, result.unchanged, result.failed,
        )
        return result

    async def verify_subject(self, subject_id: str) -> SubjectOutcome:
        """Live re-check of one subject: fetch its balance and reconcile if it changed."""
        loop = asyncio.get_running_loop()
        doc = await loop.run_in_executor(None, self._store.get, USERS, subject_id)
        if not doc or not doc.get("wallet_address"):
            return SubjectOutcome(subject_id=subject_id, success=False, error="No wallet address")

        wallet = doc["wallet_address"]
        try:
            count = await self.fetch_balance(wallet)
        except BalanceFetchError as exc:
            logger.warning("balance check failed for subject %s: %s", subject_id, exc)
            return SubjectOutcome(subject_id=subject_id, success=False, error=str(exc))
        return await self._reconcile_subject(subject_id, doc, {wallet.lower(): count})

    async def _reconcile_subject(
        self, subject_id: str, doc: Dict, balances: Dict[str, int]
    ) -> SubjectOutcome:
        count = balances.get(doc["wallet_address"].lower(), 0)
        previous = doc.get("asset_count")
        try:
            if count != previous:
                logger.info("updating role for %s: %s -> %d", subject_id, previous or 0, count)
                await self._reconciler.reconcile(subject_id, count)
                return SubjectOutcome(
                    subject_id=subject_id, success=True, asset_count=count, changed=True
                )

            logger.debug("no change for %s: still has %d", subject_id, count)
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(
                None, self._store.update, USERS, subject_id, {"last_updated": int(self._clock())}
            )
            return SubjectOutcome(subject_id=subject_id, success=True, asset_count=count)
        except (StoreUnavailableError, TierConfigError):
            raise
        except Exception as exc:
            logger.exception("error updating role for subject %s", subject_id)
            return SubjectOutcome(subject_id=subject_id, success=False, error=str(exc))
