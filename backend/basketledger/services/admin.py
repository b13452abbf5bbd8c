from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from basketledger.core.constants import OPERATOR_ROLE
from basketledger.core.errors import InvalidAddress
from basketledger.models.ledger import Ledger
from basketledger.services import basket
from basketledger.services.audit import log_event
from basketledger.services.basket import AssetInfo
from basketledger.services.environment import Environment, operation
from basketledger.services.ledgers import check_fee_rate, check_limits, get_active_ledger
from basketledger.services.membership import require_role

logger = logging.getLogger(__name__)


def update_fee_rates(
    s: Session,
    env: Environment,
    ledger_id: int,
    caller: str,
    stake_fee_rate: int,
    unstake_fee_rate: int,
) -> Ledger:
    with operation(s, env, ledger_id, "admin.fee_rates"):
        ledger = get_active_ledger(s, ledger_id)
        require_role(env.roles, OPERATOR_ROLE, caller)
        check_fee_rate("stake_fee_rate", stake_fee_rate)
        check_fee_rate("unstake_fee_rate", unstake_fee_rate)

        before = {"stake_fee_rate": ledger.stake_fee_rate, "unstake_fee_rate": ledger.unstake_fee_rate}
        ledger.stake_fee_rate = stake_fee_rate
        ledger.unstake_fee_rate = unstake_fee_rate
        log_event(
            s,
            ledger.id,
            actor=caller,
            action="admin.fee_rates",
            details={"before": before, "stake_fee_rate": stake_fee_rate, "unstake_fee_rate": unstake_fee_rate},
        )
    s.refresh(ledger)
    return ledger


def update_limits(
    s: Session,
    env: Environment,
    ledger_id: int,
    caller: str,
    dust_balance: int,
    max_supply: int,
) -> Ledger:
    with operation(s, env, ledger_id, "admin.limits"):
        ledger = get_active_ledger(s, ledger_id)
        require_role(env.roles, OPERATOR_ROLE, caller)
        check_limits(ledger, dust_balance, max_supply)

        ledger.dust_balance = dust_balance
        ledger.max_supply = max_supply
        log_event(
            s,
            ledger.id,
            actor=caller,
            action="admin.limits",
            details={"dust_balance": dust_balance, "max_supply": max_supply},
        )
    s.refresh(ledger)
    return ledger


def add_asset(s: Session, env: Environment, ledger_id: int, caller: str, vault: str, weight: int) -> AssetInfo:
    with operation(s, env, ledger_id, "admin.add_asset"):
        ledger = get_active_ledger(s, ledger_id)
        require_role(env.roles, OPERATOR_ROLE, caller)
        info = basket.add_asset(s, env, ledger, vault, weight)
        log_event(
            s,
            ledger.id,
            actor=caller,
            action="admin.add_asset",
            details={"vault": info.vault, "weight": info.weight},
        )
    return info


def set_paused(s: Session, env: Environment, ledger_id: int, caller: str, paused: bool) -> Ledger:
    action = "admin.pause" if paused else "admin.unpause"
    with operation(s, env, ledger_id, action):
        ledger = get_active_ledger(s, ledger_id)
        require_role(env.roles, OPERATOR_ROLE, caller)
        ledger.paused = paused
        log_event(s, ledger.id, actor=caller, action=action)
        logger.info("ledger %s paused=%s", ledger.id, paused)
    s.refresh(ledger)
    return ledger


def collect_fee(s: Session, env: Environment, ledger_id: int, caller: str, recipient: str) -> int:
    """Send the fees held idle in custody to ``recipient``."""
    with operation(s, env, ledger_id, "admin.collect_fee"):
        ledger = get_active_ledger(s, ledger_id)
        require_role(env.roles, OPERATOR_ROLE, caller)
        recipient = (recipient or "").strip()
        if not recipient:
            raise InvalidAddress(field="recipient")

        amount = ledger.total_fee
        ledger.total_fee = 0
        s.flush()
        if amount > 0:
            env.token.transfer(ledger.address, recipient, amount)
        log_event(
            s,
            ledger.id,
            actor=caller,
            action="admin.collect_fee",
            details={"recipient": recipient, "amount": amount},
        )
        logger.info("ledger %s: collected fee %s to %s", ledger.id, amount, recipient)
    return amount
