"""
Narrow interfaces to the systems rolegate does not own.

CommunityRoleAPI: the chat platform (one community = one guild/server)
BalanceSource: the chain, how many tokens of the collection a wallet holds
"""

from typing import Any, List, Optional, Protocol, Set


class CommunityRoleAPI(Protocol):
    async def list_communities(self) -> List[str]:
        """Ids of every community the bot is a member of."""

    async def get_member(self, community_id: str, subject_id: str) -> Optional[Any]:
        """Member handle for the subject, None when not in the community."""

    async def list_member_roles(self, member: Any) -> Set[str]:
        ...

    async def add_role(self, member: Any, role_id: str) -> None:
        ...

    async def remove_role(self, member: Any, role_id: str) -> None:
        ...

    async def bot_highest_role_position(self, community_id: str) -> int:
        ...

    async def role_position(self, community_id: str, role_id: str) -> Optional[int]:
        """Hierarchy position of the role, None when the role does not exist."""

    async def has_manage_roles_permission(self, community_id: str) -> bool:
        ...


class BalanceSource(Protocol):
    async def get_balance(self, address: str) -> int:
        """Token count held by ``address``. Raises BalanceFetchError on failure."""
