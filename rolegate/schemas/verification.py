from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from rolegate.schemas.accounts import VerifiedAccount
from rolegate.schemas.base_model import CustomBaseModel


class HealthCheck(CustomBaseModel):
    status: str = "oke"


class ChallengeRequest(BaseModel):
    """Request model for challenge creation - input validation"""

    subject_id: str = Field(..., min_length=1, description="Community member id")
    display_name: str = Field(..., min_length=1, description="Member display name, shown in the message")
    community_name: str = Field(..., min_length=1, description="Community the request comes from")
    wallet_address: str = Field(..., description="Wallet address the member claims to own")


class ChallengeResponse(CustomBaseModel):
    """Message the member has to sign with the claimed wallet"""

    subject_id: str
    wallet_address: str
    message: str
    nonce: str
    issued_at: int = 0
    expires_at: int = 0


class VerifyRequest(BaseModel):
    """Request model for signature verification - input validation"""

    subject_id: str = Field(..., min_length=1, description="Community member id")
    signature: str = Field(..., description="Hex personal_sign signature of the challenge message")


class VerifyResponse(CustomBaseModel):
    """Verified wallet with the asset count and tier assigned right after verification.
    asset_count / tier are empty when the balance lookup failed, the next batch run fills them in.
    """

    subject_id: str
    wallet_address: str
    asset_count: Optional[int] = None
    tier: Optional[str] = None
    role_id: Optional[str] = None
    balance_error: Optional[str] = None


class StatusResponse(CustomBaseModel):
    account: VerifiedAccount
    refreshed: bool = False
    error: Optional[str] = None


class RecentVerification(CustomBaseModel):
    subject_id: str
    wallet: str = ""
    date: Optional[int] = None
    asset_count: int = 0


class StatsResponse(CustomBaseModel):
    total_users: int = 0
    verified_users: int = 0
    asset_distribution: Dict[str, int] = Field(default_factory=dict)
    recent_verifications: List[RecentVerification] = Field(default_factory=list)
    pending_verifications: int = 0


class PurgeResponse(CustomBaseModel):
    removed: int = 0


class TriggerResponse(CustomBaseModel):
    success: bool = True
    message: str = ""
    result: Optional[Dict[str, Any]] = None


class ResetResponse(CustomBaseModel):
    subject_id: str
    reset: bool = True
