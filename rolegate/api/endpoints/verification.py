"""
wallet verification for community members

flow:
1. POST /challenge  -> message to sign (valid 10 minutes, max 5 requests / 15 minutes)
2. member signs the message with the wallet (personal_sign)
3. POST /verify     -> wallet verified, tier role assigned from the current balance
4. GET /status/{id} -> live re-check of the balance and roles
"""

import asyncio
from typing import Dict, List, Type

from fastapi import APIRouter, Depends, HTTPException, status

from rolegate.core.dependencies import (
    get_issuer,
    get_runner,
    get_store,
    get_verification_service,
)
from rolegate.core.errors import (
    AddressMismatch,
    Expired,
    InvalidAddress,
    MalformedSignature,
    NoChallenge,
    RateLimited,
    VerificationError,
)
from rolegate.db.document_store import USERS, DocumentStore
from rolegate.schemas.accounts import VerifiedAccount
from rolegate.schemas.verification import (
    ChallengeRequest,
    ChallengeResponse,
    StatusResponse,
    VerifyRequest,
    VerifyResponse,
)
from rolegate.services.batch_runner import BatchVerificationRunner
from rolegate.services.challenges import ChallengeIssuer
from rolegate.services.verification import VerificationService

router = APIRouter()
group_tags: List[str] = ["verification"]

ERROR_STATUS: Dict[Type[VerificationError], int] = {
    InvalidAddress: status.HTTP_400_BAD_REQUEST,
    MalformedSignature: status.HTTP_400_BAD_REQUEST,
    AddressMismatch: status.HTTP_400_BAD_REQUEST,
    NoChallenge: status.HTTP_404_NOT_FOUND,
    Expired: status.HTTP_410_GONE,
    RateLimited: status.HTTP_429_TOO_MANY_REQUESTS,
}


def to_http_error(error: VerificationError) -> HTTPException:
    code = ERROR_STATUS.get(type(error), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=code, detail=error.user_message)


@router.post(
    "/challenge",
    tags=group_tags,
    response_model=ChallengeResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_challenge(
    body: ChallengeRequest,
    issuer: ChallengeIssuer = Depends(get_issuer),
) -> ChallengeResponse:
    """Issue the message the member has to sign with the claimed wallet."""
    try:
        challenge = issuer.issue(
            subject_id=body.subject_id.strip(),
            display_name=body.display_name.strip(),
            community_name=body.community_name.strip(),
            claimed_wallet=body.wallet_address.strip(),
        )
    except VerificationError as exc:
        raise to_http_error(exc) from exc

    return ChallengeResponse(
        subject_id=challenge.subject_id,
        wallet_address=challenge.claimed_wallet,
        message=challenge.message,
        nonce=challenge.nonce,
        issued_at=challenge.issued_at,
        expires_at=challenge.expires_at,
    )


@router.post(
    "/verify",
    tags=group_tags,
    response_model=VerifyResponse,
)
async def verify_signature(
    body: VerifyRequest,
    service: VerificationService = Depends(get_verification_service),
) -> VerifyResponse:
    """
    Verify the signed challenge, then assign the tier role from the current balance.

    Returns:
    - wallet_address: checksummed verified wallet
    - asset_count / tier / role_id: empty when no tier qualifies or the balance lookup failed
    """
    subject_id = body.subject_id.strip()
    outcome = await service.complete(subject_id, body.signature.strip())
    if not outcome.result.success:
        raise to_http_error(outcome.result.error)

    return VerifyResponse(
        subject_id=subject_id,
        wallet_address=outcome.result.wallet_address,
        asset_count=outcome.asset_count,
        tier=outcome.tier.name if outcome.tier else None,
        role_id=outcome.tier.role_id if outcome.tier else None,
        balance_error=outcome.balance_error,
    )


@router.get(
    "/status/{subject_id}",
    tags=group_tags,
    response_model=StatusResponse,
)
async def get_status(
    subject_id: str,
    runner: BatchVerificationRunner = Depends(get_runner),
    store: DocumentStore = Depends(get_store),
) -> StatusResponse:
    """Re-check one member's balance now and return the stored account."""
    loop = asyncio.get_running_loop()
    doc = await loop.run_in_executor(None, store.get, USERS, subject_id)
    if not doc or not doc.get("wallet_address"):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No verified wallet found. Use the verification flow to link one.",
        )

    outcome = await runner.verify_subject(subject_id)
    doc = await loop.run_in_executor(None, store.get, USERS, subject_id)
    return StatusResponse(
        account=VerifiedAccount.from_record(doc or {}, subject_id=subject_id),
        refreshed=outcome.success,
        error=outcome.error,
    )
