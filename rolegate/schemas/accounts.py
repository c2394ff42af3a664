from typing import Any, Dict, List, Optional

from pydantic import Field

from rolegate.schemas.base_model import CustomBaseModel


class VerifiedAccount(CustomBaseModel):
    """Document stored under users/<subject_id>
    Example:
    {
        "wallet_address": "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed",
        "verified": true,
        "verification_date": 1697123456,
        "verification_method": "signature",
        "asset_count": 3,
        "last_updated": 1697123456,
        "role_id": "1122334455",
        "role_name": "Holder",
        "role_description": "Holds at least one token",
        "community_roles": {"998877": {"role_id": "1122334455", "role_name": "Holder"}}
    }
    """

    subject_id: str = ""
    wallet_address: str = ""
    verified: bool = False
    verification_date: Optional[int] = None
    verification_method: Optional[str] = None
    asset_count: Optional[int] = None
    last_updated: Optional[int] = None
    role_id: Optional[str] = None
    role_name: Optional[str] = None
    role_description: Optional[str] = None
    community_roles: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class SubjectOutcome(CustomBaseModel):
    """Per-subject result of a reconciliation: asset_count on success, error otherwise"""

    subject_id: str
    success: bool = False
    asset_count: Optional[int] = None
    error: Optional[str] = None
    changed: bool = False


class ReconciliationResult(CustomBaseModel):
    """Aggregate counters of one batch run"""

    total: int = 0
    processed: int = 0
    successful: int = 0
    unchanged: int = 0
    failed: int = 0
    balance_errors: int = 0
    outcomes: List[SubjectOutcome] = Field(default_factory=list)
