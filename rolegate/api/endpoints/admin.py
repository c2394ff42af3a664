import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from rolegate.core.dependencies import (
    admin_auth,
    get_challenge_store,
    get_scheduler,
    get_store,
)
from rolegate.core.errors import RolegateError
from rolegate.db.document_store import DocumentStore
from rolegate.schemas.verification import (
    PurgeResponse,
    ResetResponse,
    StatsResponse,
    TriggerResponse,
)
from rolegate.services.accounts import reset_account
from rolegate.services.challenge_store import ChallengeStore
from rolegate.services.scheduler import VerificationScheduler
from rolegate.services.stats import collect_stats

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(admin_auth)])
group_tags: List[str] = ["admin"]


@router.get(
    "/stats",
    tags=group_tags,
    response_model=StatsResponse,
)
def get_stats(
    store: DocumentStore = Depends(get_store),
    challenges: ChallengeStore = Depends(get_challenge_store),
) -> StatsResponse:
    """Users, verified users, asset count distribution, latest verifications, open challenges."""
    return StatsResponse(**collect_stats(store, challenges))


@router.post(
    "/trigger-verification",
    tags=group_tags,
    response_model=TriggerResponse,
)
async def trigger_verification(
    scheduler: VerificationScheduler = Depends(get_scheduler),
) -> TriggerResponse:
    """Run the batch verification now and wait for its result."""
    try:
        result = await scheduler.trigger_manual()
    except RolegateError as exc:
        logger.exception("manual verification failed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Verification run failed: {exc}",
        ) from exc

    return TriggerResponse(
        success=True,
        message="Verification process completed",
        result=result.model_dump(exclude={"outcomes"}),
    )


@router.post(
    "/challenges/purge",
    tags=group_tags,
    response_model=PurgeResponse,
)
async def purge_challenges(
    challenges: ChallengeStore = Depends(get_challenge_store),
) -> PurgeResponse:
    """Delete every expired pending challenge."""
    loop = asyncio.get_running_loop()
    removed = await loop.run_in_executor(None, challenges.purge_expired)
    return PurgeResponse(removed=removed)


@router.post(
    "/users/{subject_id}/reset",
    tags=group_tags,
    response_model=ResetResponse,
)
async def reset_user(
    subject_id: str,
    store: DocumentStore = Depends(get_store),
    challenges: ChallengeStore = Depends(get_challenge_store),
) -> ResetResponse:
    """Unverify one member: clear the wallet and asset count, drop the open challenge."""
    loop = asyncio.get_running_loop()
    found = await loop.run_in_executor(None, reset_account, store, challenges, subject_id)
    if not found:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return ResetResponse(subject_id=subject_id)
