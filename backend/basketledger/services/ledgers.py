from __future__ import annotations

import logging
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from basketledger.core.config import settings
from basketledger.core.constants import (
    DAY,
    FIXED_TERM,
    LEDGER_KINDS,
    MAX_FEE_RATE,
    OPEN_TERM,
    OPERATOR_ROLE,
    STORAGE_VERSION,
)
from basketledger.core.errors import (
    AlreadyActivated,
    DustAboveMaxSupply,
    EmptyBasket,
    InvalidAmount,
    InvalidFeeRate,
    InvalidLedgerKind,
    InvalidLockPeriod,
    LedgerNotFound,
    MaxSupplyBelowLiabilities,
    NotActivated,
    ValidationError,
    WrongLedgerKind,
)
from basketledger.models.ledger import Ledger
from basketledger.models.rate_curve import RateCurvePoint
from basketledger.services import basket
from basketledger.services.audit import log_event
from basketledger.services.environment import Environment, operation
from basketledger.services.membership import require_role
from basketledger.utils.dates import normalize

logger = logging.getLogger(__name__)


def get_ledger(s: Session, ledger_id: int) -> Ledger:
    ledger = s.execute(select(Ledger).where(Ledger.id == ledger_id)).scalar_one_or_none()
    if ledger is None:
        raise LedgerNotFound(ledger_id=ledger_id)
    return ledger


def get_active_ledger(s: Session, ledger_id: int, kind: str | None = None) -> Ledger:
    ledger = get_ledger(s, ledger_id)
    if not ledger.activated:
        raise NotActivated(ledger_id=ledger_id)
    if kind is not None and ledger.kind != kind:
        raise WrongLedgerKind(ledger_id=ledger_id, expected=kind, actual=ledger.kind)
    return ledger


def liabilities(ledger: Ledger) -> int:
    if ledger.kind == OPEN_TERM:
        return ledger.total_interest_bearing
    return ledger.total_principal + ledger.total_interest


def is_empty(ledger: Ledger) -> bool:
    if ledger.kind == OPEN_TERM:
        return ledger.total_interest_bearing == 0
    return ledger.total_principal == 0


def reopen_accrual(ledger: Ledger, now: int) -> None:
    """Restart the feed clock when funds land in an empty pool.

    Feeds on an empty pool post nothing and leave ``last_feed_time`` behind,
    so the first real feed would otherwise size its band over the whole idle
    stretch.
    """
    since = normalize(now) - DAY
    if ledger.last_feed_time < since:
        logger.info("ledger %s: feed clock moved from %s to %s", ledger.id, ledger.last_feed_time, since)
        ledger.last_feed_time = since


def check_fee_rate(name: str, rate: int) -> None:
    if rate is None or rate < 0 or rate > MAX_FEE_RATE:
        raise InvalidFeeRate(field=name, rate=rate, limit=MAX_FEE_RATE)


def check_limits(ledger: Ledger, dust_balance: int, max_supply: int) -> None:
    if dust_balance < 0 or max_supply <= 0:
        raise InvalidAmount(dust_balance=dust_balance, max_supply=max_supply)
    owed = liabilities(ledger) if ledger.kind == OPEN_TERM else ledger.total_principal
    if max_supply < owed:
        raise MaxSupplyBelowLiabilities(max_supply=max_supply, liabilities=owed)
    if dust_balance > max_supply:
        raise DustAboveMaxSupply(dust_balance=dust_balance, max_supply=max_supply)


def create_ledger(
    s: Session,
    env: Environment,
    caller: str,
    name: str,
    kind: str,
    lock_period: int | None = None,
) -> Ledger:
    """First construction phase: the fields that never change afterwards."""
    require_role(env.roles, OPERATOR_ROLE, caller)

    nm = (name or "").strip()
    if not nm:
        raise ValidationError(field="name")
    if kind not in LEDGER_KINDS:
        raise InvalidLedgerKind(kind=kind)
    if kind == FIXED_TERM:
        if lock_period is None or lock_period <= 0 or lock_period % DAY != 0:
            raise InvalidLockPeriod(lock_period=lock_period)
    else:
        lock_period = None

    ledger = Ledger(
        name=nm,
        kind=kind,
        address=f"ledger-{uuid4().hex[:16]}",
        token_address=env.token.address,
        lock_period=lock_period,
        schema_version=STORAGE_VERSION,
        activated=False,
        paused=False,
        stake_fee_rate=0,
        unstake_fee_rate=0,
        dust_balance=0,
        max_supply=0,
        max_interest_rate=0,
        max_loss_rate=0,
        last_feed_time=0,
        total_fee=0,
        total_interest_bearing=0,
        total_shares=0,
        total_principal=0,
        total_interest=0,
        next_token_id=1,
    )
    s.add(ledger)
    s.flush()
    log_event(
        s,
        ledger.id,
        actor=caller,
        action="ledger.create",
        details={"name": nm, "kind": kind, "lock_period": lock_period, "address": ledger.address},
    )
    s.commit()
    s.refresh(ledger)
    logger.info("created %s ledger %s (%s)", kind, ledger.id, ledger.address)
    return ledger


def activate_ledger(
    s: Session,
    env: Environment,
    ledger_id: int,
    caller: str,
    *,
    stake_fee_rate: int,
    unstake_fee_rate: int,
    dust_balance: int,
    max_supply: int,
    assets: list[tuple[str, int]],
    max_interest_rate: int | None = None,
    max_loss_rate: int | None = None,
) -> Ledger:
    """Second construction phase, allowed exactly once."""
    with operation(s, env, ledger_id, "ledger.activate"):
        ledger = get_ledger(s, ledger_id)
        require_role(env.roles, OPERATOR_ROLE, caller)
        if ledger.activated:
            raise AlreadyActivated(ledger_id=ledger_id)

        check_fee_rate("stake_fee_rate", stake_fee_rate)
        check_fee_rate("unstake_fee_rate", unstake_fee_rate)
        check_limits(ledger, dust_balance, max_supply)
        if not assets:
            raise EmptyBasket()

        mir = settings.default_max_interest_rate if max_interest_rate is None else max_interest_rate
        mlr = settings.default_max_loss_rate if max_loss_rate is None else max_loss_rate
        if mir < 0 or mlr < 0:
            raise ValidationError(max_interest_rate=mir, max_loss_rate=mlr)

        for vault_address, weight in assets:
            basket.add_asset(s, env, ledger, vault_address, weight)

        ledger.stake_fee_rate = stake_fee_rate
        ledger.unstake_fee_rate = unstake_fee_rate
        ledger.dust_balance = dust_balance
        ledger.max_supply = max_supply
        ledger.max_interest_rate = mir
        ledger.max_loss_rate = mlr
        ledger.last_feed_time = normalize(env.now())
        ledger.activated = True

        if ledger.kind == FIXED_TERM:
            s.add(
                RateCurvePoint(
                    ledger_id=ledger.id,
                    feed_time=ledger.last_feed_time,
                    accumulated_rate=0,
                    accruing_principal=0,
                    delta=0,
                )
            )

        log_event(
            s,
            ledger.id,
            actor=caller,
            action="ledger.activate",
            details={
                "stake_fee_rate": stake_fee_rate,
                "unstake_fee_rate": unstake_fee_rate,
                "dust_balance": dust_balance,
                "max_supply": max_supply,
                "assets": [[v, w] for v, w in assets],
                "last_feed_time": ledger.last_feed_time,
            },
        )
    s.refresh(ledger)
    return ledger


def list_ledgers(s: Session) -> list[Ledger]:
    return s.execute(select(Ledger).order_by(Ledger.id.asc())).scalars().all()
