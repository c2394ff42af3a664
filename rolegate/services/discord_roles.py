"""
CommunityRoleAPI on top of a connected discord.py client.

community id = guild id, subject id = user id, role ids are the snowflakes
as strings. The client is handed in by the caller once it is ready; this
module never creates or logs in a client itself.
"""

import logging
from typing import List, Optional, Set

import discord

from rolegate.core.errors import PermissionOrHierarchyError, RoleMutationError

logger = logging.getLogger(__name__)

AUDIT_REASON = "Token holder tier update"


class DiscordRoleAPI:
    def __init__(self, client: discord.Client):
        self._client = client

    def _guild(self, community_id: str) -> discord.Guild:
        guild = self._client.get_guild(int(community_id))
        if guild is None:
            raise LookupError(f"bot is not in guild {community_id}")
        return guild

    async def list_communities(self) -> List[str]:
        return [str(guild.id) for guild in self._client.guilds]

    async def get_member(self, community_id: str, subject_id: str) -> Optional[discord.Member]:
        guild = self._guild(community_id)
        member = guild.get_member(int(subject_id))
        if member is not None:
            return member
        try:
            return await guild.fetch_member(int(subject_id))
        except discord.NotFound:
            return None

    async def list_member_roles(self, member: discord.Member) -> Set[str]:
        return {str(role.id) for role in member.roles}

    async def add_role(self, member: discord.Member, role_id: str) -> None:
        role = self._role(member.guild, role_id)
        try:
            await member.add_roles(role, reason=AUDIT_REASON)
        except discord.Forbidden as exc:
            raise PermissionOrHierarchyError(str(member.guild.id), role_id, str(exc)) from exc
        except discord.HTTPException as exc:
            raise RoleMutationError(str(member.guild.id), role_id, str(exc)) from exc

    async def remove_role(self, member: discord.Member, role_id: str) -> None:
        role = self._role(member.guild, role_id)
        try:
            await member.remove_roles(role, reason=AUDIT_REASON)
        except discord.Forbidden as exc:
            raise PermissionOrHierarchyError(str(member.guild.id), role_id, str(exc)) from exc
        except discord.HTTPException as exc:
            raise RoleMutationError(str(member.guild.id), role_id, str(exc)) from exc

    async def bot_highest_role_position(self, community_id: str) -> int:
        me = self._guild(community_id).me
        return me.top_role.position if me is not None else -1

    async def role_position(self, community_id: str, role_id: str) -> Optional[int]:
        role = self._guild(community_id).get_role(int(role_id))
        return role.position if role is not None else None

    async def has_manage_roles_permission(self, community_id: str) -> bool:
        me = self._guild(community_id).me
        return me is not None and me.guild_permissions.manage_roles

    @staticmethod
    def _role(guild: discord.Guild, role_id: str) -> discord.Role:
        role = guild.get_role(int(role_id))
        if role is None:
            raise RoleMutationError(str(guild.id), role_id, "role not found")
        return role


def build_client() -> discord.Client:
    """Gateway client with the members intent needed to fetch members and roles."""
    intents = discord.Intents.default()
    intents.members = True
    return discord.Client(intents=intents)
