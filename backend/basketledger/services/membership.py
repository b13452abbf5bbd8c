from __future__ import annotations

from typing import Iterable, Protocol

from basketledger.core.errors import NotMember, NotOperator


class MembershipGate(Protocol):
    def is_member(self, address: str) -> bool: ...


class RoleBook(Protocol):
    def has_role(self, role: str, address: str) -> bool: ...


class AllowList:
    """Static membership gate; ``open=True`` admits everybody."""

    def __init__(self, members: Iterable[str] = (), open: bool = False):
        self.members = set(members)
        self.open = open

    def is_member(self, address: str) -> bool:
        return self.open or address in self.members

    def add(self, address: str) -> None:
        self.members.add(address)


class StaticRoles:
    def __init__(self, grants: dict[str, Iterable[str]] | None = None):
        self.grants = {role: set(holders) for role, holders in (grants or {}).items()}

    def has_role(self, role: str, address: str) -> bool:
        return address in self.grants.get(role, set())

    def grant(self, role: str, address: str) -> None:
        self.grants.setdefault(role, set()).add(address)


def require_member(gate: MembershipGate, *addresses: str) -> None:
    for a in addresses:
        if not gate.is_member(a):
            raise NotMember(address=a)


def require_role(roles: RoleBook, role: str, address: str) -> None:
    if not roles.has_role(role, address):
        raise NotOperator(address=address, role=role)
