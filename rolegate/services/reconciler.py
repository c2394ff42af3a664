"""
Role reconciliation.

Brings a member's tier roles in line with the tier implied by their asset
count, in every community the bot can see:
1. target = highest tier the count qualifies for (or none)
2. current = member roles that belong to any configured tier
3. already correct (no tier role and no target, or exactly the target role) -> nothing to do
4. otherwise remove every tier role that is not the target, then add the target
Each add/remove goes through a pre-flight capability check (manage-roles
permission, role exists, bot ranks strictly above the role); a failed check
or a failed call is logged and skipped, it never fails the reconciliation.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from rolegate.core.config import settings
from rolegate.core.errors import RoleMutationError
from rolegate.db.document_store import USERS, DocumentStore
from rolegate.services.community import CommunityRoleAPI
from rolegate.services.tiers import Tier, TierCalculator, select_tier

logger = logging.getLogger(__name__)

ADD = "add"
REMOVE = "remove"


class SkipReason(str, Enum):
    MISSING_PERMISSION = "missing_permission"
    ROLE_NOT_FOUND = "role_not_found"
    ROLE_HIERARCHY = "role_hierarchy"


@dataclass
class CommunityOutcome:
    community_id: str
    target: Optional[Tier] = None
    in_sync: bool = False
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    skipped: List[Tuple[str, str, str]] = field(default_factory=list)
    failed: List[Tuple[str, str, str]] = field(default_factory=list)

    @property
    def mutations(self) -> int:
        return len(self.added) + len(self.removed)

    def to_doc(self) -> Dict[str, Any]:
        return {
            "role_id": self.target.role_id if self.target else None,
            "role_name": self.target.name if self.target else None,
            "in_sync": self.in_sync or not (self.skipped or self.failed),
        }


class RoleReconciler:
    def __init__(
        self,
        community: CommunityRoleAPI,
        calculator: TierCalculator,
        store: DocumentStore,
        mutation_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._community = community
        self.calculator = calculator
        self._store = store
        self._mutation_timeout = (
            mutation_timeout if mutation_timeout is not None else settings.ROLE_MUTATION_TIMEOUT_SECONDS
        )
        self._clock = clock

    async def check_capability(self, community_id: str, role_id: str) -> Optional[SkipReason]:
        """Why the bot cannot change ``role_id`` in this community, None if it can."""
        if not await self._community.has_manage_roles_permission(community_id):
            return SkipReason.MISSING_PERMISSION
        role_position = await self._community.role_position(community_id, role_id)
        if role_position is None:
            return SkipReason.ROLE_NOT_FOUND
        if await self._community.bot_highest_role_position(community_id) <= role_position:
            return SkipReason.ROLE_HIERARCHY
        return None

    async def reconcile(self, subject_id: str, asset_count: int) -> Optional[Tier]:
        """Sync the subject's tier roles with ``asset_count`` and persist the result.

        Returns the target tier (None when no tier qualifies) whatever happened
        to the individual role changes.
        """
        tiers = self.calculator.tiers()
        target = select_tier(tiers, asset_count)
        tier_role_ids = {tier.role_id for tier in tiers}

        outcomes: List[CommunityOutcome] = []
        communities = await self._community.list_communities()
        if not communities:
            logger.error("bot is not in any community, cannot reconcile %s", subject_id)
        for community_id in communities:
            try:
                outcome = await self._reconcile_community(
                    community_id, subject_id, target, tier_role_ids
                )
            except Exception:
                logger.exception(
                    "error updating roles for subject %s in community %s", subject_id, community_id
                )
                continue
            if outcome is not None:
                outcomes.append(outcome)

        await self._persist(subject_id, asset_count, target, outcomes)
        return target

    async def _reconcile_community(
        self,
        community_id: str,
        subject_id: str,
        target: Optional[Tier],
        tier_role_ids: Set[str],
    ) -> Optional[CommunityOutcome]:
        member = await self._community.get_member(community_id, subject_id)
        if member is None:
            logger.debug("subject %s is not a member of community %s", subject_id, community_id)
            return None

        current = set(await self._community.list_member_roles(member)) & tier_role_ids
        target_role = target.role_id if target else None
        outcome = CommunityOutcome(community_id=community_id, target=target)

        if (target_role is None and not current) or current == {target_role}:
            outcome.in_sync = True
            return outcome

        for role_id in sorted(current - {target_role}):
            await self._apply(community_id, subject_id, member, role_id, REMOVE, outcome)

        if target_role is not None and target_role not in current:
            await self._apply(community_id, subject_id, member, target_role, ADD, outcome)

        logger.info(
            "subject %s in community %s: target=%s added=%s removed=%s skipped=%d failed=%d",
            subject_id,
            community_id,
            target.name if target else None,
            outcome.added,
            outcome.removed,
            len(outcome.skipped),
            len(outcome.failed),
        )
        return outcome

    async def _apply(
        self,
        community_id: str,
        subject_id: str,
        member: Any,
        role_id: str,
        action: str,
        outcome: CommunityOutcome,
    ) -> None:
        try:
            reason = await self.check_capability(community_id, role_id)
        except Exception as exc:
            logger.exception("capability check for role %s in community %s failed", role_id, community_id)
            outcome.failed.append((action, role_id, str(exc)))
            return
        if reason is not None:
            logger.warning(
                "skipping %s of role %s for subject %s in community %s: %s",
                action, role_id, subject_id, community_id, reason.value,
            )
            outcome.skipped.append((action, role_id, reason.value))
            return

        call = self._community.add_role if action == ADD else self._community.remove_role
        try:
            await asyncio.wait_for(call(member, role_id), timeout=self._mutation_timeout)
        except asyncio.TimeoutError:
            logger.error(
                "%s of role %s for subject %s timed out after %ss",
                action, role_id, subject_id, self._mutation_timeout,
            )
            outcome.failed.append((action, role_id, "timeout"))
            return
        except RoleMutationError as exc:
            logger.error("%s of role %s for subject %s failed: %s", action, role_id, subject_id, exc)
            outcome.failed.append((action, role_id, exc.reason))
            return
        except Exception as exc:
            logger.exception(
                "%s of role %s for subject %s failed unexpectedly", action, role_id, subject_id
            )
            outcome.failed.append((action, role_id, str(exc)))
            return

        if action == ADD:
            outcome.added.append(role_id)
        else:
            outcome.removed.append(role_id)

    async def _persist(
        self,
        subject_id: str,
        asset_count: int,
        target: Optional[Tier],
        outcomes: List[CommunityOutcome],
    ) -> None:
        update: Dict[str, Any] = {
            "asset_count": asset_count,
            "last_updated": int(self._clock()),
        }
        if outcomes:
            update["community_roles"] = {o.community_id: o.to_doc() for o in outcomes}
        # role fields keep their last computed value when nothing qualifies
        if target is not None:
            update["role_id"] = target.role_id
            update["role_name"] = target.name
            update["role_description"] = target.description

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, lambda: self._store.set(USERS, subject_id, update, merge=True))
