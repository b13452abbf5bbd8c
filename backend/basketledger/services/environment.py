from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Protocol

from sqlalchemy.orm import Session

from basketledger.core.config import settings
from basketledger.core.constants import OPERATOR_ROLE
from basketledger.core.errors import LedgerError, ReentrantCall
from basketledger.services.membership import AllowList, MembershipGate, RoleBook, StaticRoles
from basketledger.services.token import InMemoryToken, UnitToken
from basketledger.services.vaults import InMemoryVault, VaultRegistry
from basketledger.utils.dates import now_ts

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> int: ...


class SystemClock:
    def now(self) -> int:
        return now_ts()


class FixedClock:
    def __init__(self, ts: int):
        self.ts = int(ts)

    def now(self) -> int:
        return self.ts

    def advance(self, seconds: int) -> int:
        self.ts += int(seconds)
        return self.ts


@dataclass
class Environment:
    """Everything a ledger talks to outside its own tables."""

    token: UnitToken
    vaults: VaultRegistry
    gate: MembershipGate
    roles: RoleBook
    clock: Clock = field(default_factory=SystemClock)
    lock: threading.RLock = field(default_factory=threading.RLock)

    def now(self) -> int:
        return self.clock.now()

    def _participants(self) -> list:
        return [p for p in [self.token, *self.vaults] if hasattr(p, "snapshot")]

    def snapshot(self) -> list:
        return [(p, p.snapshot()) for p in self._participants()]

    def restore(self, snap: list) -> None:
        for p, state in snap:
            p.restore(state)


_entered: set[int] = set()


@contextmanager
def operation(s: Session, env: Environment, ledger_id: int, action: str):
    """Run one externally visible ledger operation atomically.

    Commits the session on success. On any failure the session is rolled
    back and the collaborators' in-memory state restored, then the error is
    re-raised. A vault calling back into the same ledger mid-operation gets
    ``ReentrantCall``.
    """
    with env.lock:
        if ledger_id in _entered:
            raise ReentrantCall(ledger_id=ledger_id, action=action)
        _entered.add(ledger_id)
        snap = env.snapshot()
        try:
            yield
            s.commit()
        except LedgerError as e:
            s.rollback()
            env.restore(snap)
            logger.info("%s on ledger %s rejected: %s", action, ledger_id, e)
            raise
        except Exception:
            s.rollback()
            env.restore(snap)
            logger.exception("%s on ledger %s failed", action, ledger_id)
            raise
        finally:
            _entered.discard(ledger_id)


def _split(v: str) -> list[str]:
    return [x.strip() for x in (v or "").split(",") if x.strip()]


def build_environment() -> Environment:
    token = InMemoryToken(settings.token_address)
    vaults = VaultRegistry(InMemoryVault(a, token) for a in _split(settings.vault_addresses))
    members = _split(settings.member_addresses)
    gate = AllowList(members, open=not members)
    roles = StaticRoles({OPERATOR_ROLE: _split(settings.operator_addresses)})
    return Environment(token=token, vaults=vaults, gate=gate, roles=roles)


@lru_cache
def get_environment() -> Environment:
    return build_environment()
