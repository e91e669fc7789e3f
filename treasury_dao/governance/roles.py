"""
Role Registry — role tag → set of principals.

Each component (governance engine, treasury vault) owns its own registry
and queries it synchronously on every gated call. The registry itself does
no authorization: the component invoking grant/revoke must first check that
its caller holds the administrative role.

Granting an existing membership or revoking a missing one is a no-op.
"""

from __future__ import annotations

import logging

from treasury_dao.core.errors import InvalidAddress
from treasury_dao.core.schema import Role, is_null_address

logger = logging.getLogger(__name__)


class RoleRegistry:
    """Membership sets keyed by role."""

    def __init__(self, initial: dict[Role, set[str]] | None = None) -> None:
        self._members: dict[Role, set[str]] = {role: set() for role in Role}
        for role, principals in (initial or {}).items():
            for principal in principals:
                self.grant(role, principal)

    def has(self, role: Role, principal: str | None) -> bool:
        if principal is None:
            return False
        return principal in self._members[role]

    def grant(self, role: Role, principal: str) -> bool:
        """
        Add `principal` to `role`.

        Returns:
            True if membership changed, False if it already existed.
        """
        if is_null_address(principal):
            raise InvalidAddress(f"Cannot grant {role.value} to a null principal")
        if principal in self._members[role]:
            return False
        self._members[role].add(principal)
        logger.info("Role granted: %s -> %s", role.value, principal)
        return True

    def revoke(self, role: Role, principal: str) -> bool:
        """
        Remove `principal` from `role`.

        Returns:
            True if membership changed, False if it was not a member.
        """
        if principal not in self._members[role]:
            return False
        self._members[role].discard(principal)
        logger.info("Role revoked: %s -> %s", role.value, principal)
        return True

    def members(self, role: Role) -> list[str]:
        """Sorted snapshot of the principals holding `role`."""
        return sorted(self._members[role])
