from typing import Dict, List, Optional, Set, Tuple

from eth_account.messages import encode_defunct

from rolegate.core.errors import BalanceFetchError, RoleMutationError
from rolegate.services.challenge_store import Challenge

HOLDER_ROLE = "r-holder"
WHALE_ROLE = "r-whale"


def sign(account, message: str) -> str:
    """personal_sign the message, hex encoded"""
    return account.sign_message(encode_defunct(text=message)).signature.hex()


class FakeClock:
    """Manually driven clock, returns epoch seconds like time.time"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMember:
    def __init__(self, community_id: str, subject_id: str, roles: Optional[Set[str]] = None):
        self.community_id = community_id
        self.subject_id = subject_id
        self.roles = set(roles or ())


class FakeCommunity:
    """In-memory CommunityRoleAPI recording every role mutation.

    roles: role id -> hierarchy position, bot_position is the bot's highest role
    """

    def __init__(
        self,
        community_id: str = "c1",
        roles: Optional[Dict[str, int]] = None,
        bot_position: int = 10,
        manage_roles: bool = True,
    ):
        self.communities: Dict[str, Dict] = {}
        self.calls: List[Tuple[str, str, str, str]] = []
        self.fail_roles: Set[str] = set()
        self.add_community(community_id, roles or {}, bot_position, manage_roles)

    def add_community(
        self,
        community_id: str,
        roles: Dict[str, int],
        bot_position: int = 10,
        manage_roles: bool = True,
    ) -> None:
        self.communities[community_id] = {
            "members": {},
            "roles": dict(roles),
            "bot_position": bot_position,
            "manage_roles": manage_roles,
        }

    def add_member(self, subject_id: str, roles: Optional[Set[str]] = None, community_id: str = "c1") -> FakeMember:
        member = FakeMember(community_id, subject_id, roles)
        self.communities[community_id]["members"][subject_id] = member
        return member

    def member(self, subject_id: str, community_id: str = "c1") -> FakeMember:
        return self.communities[community_id]["members"][subject_id]

    async def list_communities(self) -> List[str]:
        return list(self.communities)

    async def get_member(self, community_id: str, subject_id: str) -> Optional[FakeMember]:
        return self.communities[community_id]["members"].get(subject_id)

    async def list_member_roles(self, member: FakeMember) -> Set[str]:
        return set(member.roles)

    async def add_role(self, member: FakeMember, role_id: str) -> None:
        if role_id in self.fail_roles:
            raise RoleMutationError(member.community_id, role_id, "rejected")
        self.calls.append(("add", member.community_id, member.subject_id, role_id))
        member.roles.add(role_id)

    async def remove_role(self, member: FakeMember, role_id: str) -> None:
        if role_id in self.fail_roles:
            raise RoleMutationError(member.community_id, role_id, "rejected")
        self.calls.append(("remove", member.community_id, member.subject_id, role_id))
        member.roles.discard(role_id)

    async def bot_highest_role_position(self, community_id: str) -> int:
        return self.communities[community_id]["bot_position"]

    async def role_position(self, community_id: str, role_id: str) -> Optional[int]:
        return self.communities[community_id]["roles"].get(role_id)

    async def has_manage_roles_permission(self, community_id: str) -> bool:
        return self.communities[community_id]["manage_roles"]


class FakeBalances:
    """BalanceSource answering from a dict keyed by lower-cased address.
    An Exception value is raised instead of returned."""

    def __init__(self, balances: Optional[Dict[str, object]] = None):
        self.balances = {k.lower(): v for k, v in (balances or {}).items()}
        self.calls: List[str] = []

    def set_balance(self, address: str, value: object) -> None:
        self.balances[address.lower()] = value

    async def get_balance(self, address: str) -> int:
        self.calls.append(address)
        value = self.balances.get(address.lower(), 0)
        if isinstance(value, Exception):
            raise value
        return value


def balance_error(address: str) -> BalanceFetchError:
    return BalanceFetchError(address, "rpc unavailable")


def make_challenge(subject_id="42", issued_at=1_700_000_000, ttl=600, nonce="ab"):
    return Challenge(
        subject_id=subject_id,
        claimed_wallet="0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed",
        message=f"message {nonce}",
        nonce=nonce,
        issued_at=issued_at,
        expires_at=issued_at + ttl,
    )
