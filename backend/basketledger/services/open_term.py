from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from basketledger.core.constants import OPEN_TERM, OPERATOR_ROLE, PRECISION
from basketledger.core.errors import (
    BelowDustBalance,
    ExceedsMaxSupply,
    InsufficientFunds,
    InvalidAmount,
    NotOwner,
    Paused,
    PoolBankrupt,
)
from basketledger.models.ledger import Ledger
from basketledger.models.share_position import SharePosition
from basketledger.services import basket
from basketledger.services.audit import log_event
from basketledger.services.environment import Environment, operation
from basketledger.services.ledgers import get_active_ledger, is_empty, reopen_accrual
from basketledger.services.membership import require_member

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PositionView:
    owner: str
    shares: int
    value: int


@dataclass(frozen=True)
class StakeOutcome:
    shares: int
    fee: int
    net: int


@dataclass(frozen=True)
class UnstakeOutcome:
    amount: int
    shares: int
    fee: int
    paid: int


def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)


def _position(s: Session, ledger_id: int, owner: str) -> SharePosition | None:
    return (
        s.execute(select(SharePosition).where(SharePosition.ledger_id == ledger_id, SharePosition.owner == owner))
        .scalars()
        .first()
    )


def shares_to_assets(ledger: Ledger, shares: int) -> int:
    if ledger.total_shares == 0:
        return 0
    return shares * ledger.total_interest_bearing // ledger.total_shares


def assets_to_shares(ledger: Ledger, assets: int) -> int:
    if ledger.total_shares == 0:
        return assets
    return assets * ledger.total_shares // ledger.total_interest_bearing


def position_of(s: Session, ledger_id: int, owner: str) -> PositionView:
    ledger = get_active_ledger(s, ledger_id, OPEN_TERM)
    pos = _position(s, ledger_id, owner)
    shares = pos.shares if pos is not None else 0
    return PositionView(owner=owner, shares=shares, value=shares_to_assets(ledger, shares))


def list_positions(s: Session, ledger_id: int) -> list[PositionView]:
    ledger = get_active_ledger(s, ledger_id, OPEN_TERM)
    rows = (
        s.execute(select(SharePosition).where(SharePosition.ledger_id == ledger_id).order_by(SharePosition.id.asc()))
        .scalars()
        .all()
    )
    return [PositionView(owner=p.owner, shares=p.shares, value=shares_to_assets(ledger, p.shares)) for p in rows]


def stake(s: Session, env: Environment, ledger_id: int, caller: str, amount: int) -> StakeOutcome:
    return stake_from(s, env, ledger_id, caller, amount, beneficiary=caller)


def stake_from(
    s: Session,
    env: Environment,
    ledger_id: int,
    caller: str,
    amount: int,
    beneficiary: str,
) -> StakeOutcome:
    with operation(s, env, ledger_id, "open.stake"):
        ledger = get_active_ledger(s, ledger_id, OPEN_TERM)
        require_member(env.gate, caller, beneficiary)
        if amount is None or amount <= 0:
            raise InvalidAmount(amount=amount)
        if ledger.paused:
            raise Paused(ledger_id=ledger_id)

        bal = env.token.balance_of(caller)
        allowed = env.token.allowance(caller, ledger.address)
        if bal < amount or allowed < amount:
            raise InsufficientFunds(owner=caller, required=amount, available=bal, allowance=allowed)

        fee = amount * ledger.stake_fee_rate // PRECISION
        net = amount - fee
        if ledger.total_shares > 0 and ledger.total_interest_bearing == 0:
            raise PoolBankrupt(ledger_id=ledger_id)

        shares = assets_to_shares(ledger, net)
        if net <= 0 or shares <= 0:
            raise InvalidAmount(amount=amount, fee=fee)

        new_total = ledger.total_interest_bearing + net
        if new_total > ledger.max_supply:
            raise ExceedsMaxSupply(max_supply=ledger.max_supply, resulting=new_total)
        if new_total < ledger.dust_balance:
            raise BelowDustBalance(dust_balance=ledger.dust_balance, resulting=new_total)

        if is_empty(ledger):
            reopen_accrual(ledger, env.now())
        pos = _position(s, ledger_id, beneficiary)
        if pos is None:
            pos = SharePosition(ledger_id=ledger_id, owner=beneficiary, shares=0)
            s.add(pos)
        pos.shares = pos.shares + shares
        ledger.total_shares = ledger.total_shares + shares
        ledger.total_interest_bearing = new_total
        ledger.total_fee = ledger.total_fee + fee
        s.flush()

        env.token.transfer_from(ledger.address, caller, ledger.address, amount)
        basket.deposit_pro_rata(s, env, ledger, net)

        log_event(
            s,
            ledger.id,
            actor=caller,
            action="open.stake",
            details={"beneficiary": beneficiary, "amount": amount, "fee": fee, "net": net, "shares": shares},
        )
        logger.info("ledger %s: %s staked %s for %s shares", ledger.id, beneficiary, net, shares)

    return StakeOutcome(shares=shares, fee=fee, net=net)


def unstake(s: Session, env: Environment, ledger_id: int, caller: str, amount: int) -> UnstakeOutcome:
    return unstake_from(s, env, ledger_id, caller, amount, owner=caller)


def unstake_from(
    s: Session,
    env: Environment,
    ledger_id: int,
    caller: str,
    amount: int,
    owner: str,
) -> UnstakeOutcome:
    """Redeem up to ``amount`` of ``owner``'s claim.

    Requests above the owned value are clamped to it instead of failing.
    """
    with operation(s, env, ledger_id, "open.unstake"):
        ledger = get_active_ledger(s, ledger_id, OPEN_TERM)
        require_member(env.gate, caller, owner)
        if caller != owner and not env.roles.has_role(OPERATOR_ROLE, caller):
            raise NotOwner(caller=caller, owner=owner)
        if amount is None or amount <= 0:
            raise InvalidAmount(amount=amount)
        if ledger.total_interest_bearing == 0:
            raise PoolBankrupt(ledger_id=ledger_id)

        pos = _position(s, ledger_id, owner)
        owned_shares = pos.shares if pos is not None else 0
        owned_value = shares_to_assets(ledger, owned_shares)
        if owned_value <= 0:
            raise InvalidAmount(amount=amount, owned=owned_value)

        if amount >= owned_value:
            amount = owned_value
            burn = owned_shares
        else:
            burn = min(_ceil_div(amount * ledger.total_shares, ledger.total_interest_bearing), owned_shares)

        remaining = ledger.total_interest_bearing - amount
        if 0 < remaining < ledger.dust_balance:
            raise BelowDustBalance(dust_balance=ledger.dust_balance, resulting=remaining)

        fee = amount * ledger.unstake_fee_rate // PRECISION
        paid = amount - fee

        pos.shares = owned_shares - burn
        ledger.total_shares = ledger.total_shares - burn
        ledger.total_interest_bearing = remaining
        ledger.total_fee = ledger.total_fee + fee
        s.flush()

        basket.withdraw_pro_rata(s, env, ledger, amount)
        if paid > 0:
            env.token.transfer(ledger.address, owner, paid)

        log_event(
            s,
            ledger.id,
            actor=caller,
            action="open.unstake",
            details={"owner": owner, "amount": amount, "shares": burn, "fee": fee, "paid": paid},
        )
        logger.info("ledger %s: %s redeemed %s (%s shares, fee %s)", ledger.id, owner, amount, burn, fee)

    return UnstakeOutcome(amount=amount, shares=burn, fee=fee, paid=paid)
