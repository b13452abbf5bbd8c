"""Reconciliation of accounted liabilities against the priced basket.

A feed posts one accounting day. The caller-supplied target is snapped to
the daily boundary, checked against the last posted day and the
environment's own clock, and only then is the basket priced. The difference
between basket value and liabilities is bounded by an annualized band scaled
by the elapsed time, which keeps a broken or manipulated vault from writing
arbitrary interest into the books.

Open-term ledgers fold the delta into ``total_interest_bearing`` (never below
zero). Fixed-term ledgers add it to the signed ``total_interest`` and extend
the accumulated-rate curve so every certificate's interest can be read off
two curve samples later. Whatever the curve cannot hand to an earning
certificate is carried in ``unallocated_interest``; shortfalls there are
settled against all open certificates through ``settlement_rate``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from basketledger.core.constants import CURVE_SCALE, DAY, OPEN_TERM, OPERATOR_ROLE, PRECISION, YEAR
from basketledger.core.errors import (
    FeedFutureNotAllowed,
    FeedRequiresForce,
    FeedTimeAncient,
    UnbelievableInterestRate,
)
from basketledger.models.ledger import Ledger
from basketledger.models.rate_curve import PrincipalSchedule, RateCurvePoint
from basketledger.services import basket
from basketledger.services.audit import log_event
from basketledger.services.environment import Environment, operation
from basketledger.services.ledgers import get_active_ledger, is_empty, liabilities
from basketledger.services.membership import require_role
from basketledger.utils.dates import normalize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedOutcome:
    posted: bool
    feed_time: int
    basket_value: int = 0
    previous_liabilities: int = 0
    delta: int = 0


def check_feed_window(last_feed_time: int, target: int, now: int, force: bool) -> int:
    t = normalize(target)
    if t < last_feed_time:
        raise FeedTimeAncient(feed_time=t, last_feed_time=last_feed_time)
    if t == last_feed_time and not force:
        raise FeedRequiresForce(feed_time=t)
    today = normalize(now)
    if t > today:
        raise FeedFutureNotAllowed(feed_time=t, latest=today)
    return t


def interest_bound(owed: int, rate: int, elapsed: int, slack: int) -> int:
    elapsed = max(elapsed, DAY)
    return max(owed, 0) * rate * elapsed // (PRECISION * YEAR) + slack


def check_delta(ledger: Ledger, owed: int, delta: int, elapsed: int, slack: int) -> None:
    if delta >= 0:
        bound = interest_bound(owed, ledger.max_interest_rate, elapsed, slack)
        if delta > bound:
            raise UnbelievableInterestRate(delta=delta, bound=bound, liabilities=owed)
    else:
        bound = interest_bound(owed, ledger.max_loss_rate, elapsed, slack)
        if -delta > bound:
            raise UnbelievableInterestRate(delta=delta, bound=-bound, liabilities=owed)


def accruing_principal(s: Session, ledger: Ledger, period_start: int, period_end: int) -> int:
    """Principal entitled to the delta of the period (period_start, period_end].

    That is every certificate started on or before the period start that has
    not matured before the period end. Read from the per-day schedule, so the
    cost does not depend on how many certificates are outstanding.
    """
    rows = (
        s.execute(
            select(PrincipalSchedule.principal).where(
                PrincipalSchedule.ledger_id == ledger.id,
                PrincipalSchedule.start_date <= period_start,
                PrincipalSchedule.start_date >= period_end - int(ledger.lock_period or 0),
            )
        )
        .scalars()
        .all()
    )
    return sum(rows, 0)


def _latest_point(s: Session, ledger_id: int) -> RateCurvePoint | None:
    return (
        s.execute(
            select(RateCurvePoint)
            .where(RateCurvePoint.ledger_id == ledger_id)
            .order_by(RateCurvePoint.feed_time.desc())
            .limit(1)
        )
        .scalars()
        .first()
    )


def _post_curve(s: Session, ledger: Ledger, t: int, delta: int) -> int:
    """Extend the curve by ``delta`` and return the part earning certificates will be paid."""
    last = _latest_point(s, ledger.id)
    if last is not None and last.feed_time == t:
        # forced re-feed of the same day: the new delta belongs to the same period
        accruing = last.accruing_principal
        inc = delta * CURVE_SCALE // accruing if accruing > 0 else 0
        last.accumulated_rate = last.accumulated_rate + inc
        last.delta = last.delta + delta
        return inc * accruing // CURVE_SCALE

    accruing = accruing_principal(s, ledger, ledger.last_feed_time, t)
    inc = delta * CURVE_SCALE // accruing if accruing > 0 else 0
    prev = last.accumulated_rate if last is not None else 0
    s.add(
        RateCurvePoint(
            ledger_id=ledger.id,
            feed_time=t,
            accumulated_rate=prev + inc,
            accruing_principal=accruing,
            delta=delta,
        )
    )
    return inc * accruing // CURVE_SCALE


def _settle_unallocated(ledger: Ledger, unallocated: int) -> None:
    """Carry what the curve did not hand out.

    A surplus stays with the pool and absorbs later shortfalls. A shortfall
    (a loss posted after certificates matured, or in a period nobody was
    earning) is charged pro rata to every open certificate's principal.
    """
    if unallocated < 0:
        step = unallocated * CURVE_SCALE // ledger.total_principal
        ledger.settlement_rate = ledger.settlement_rate + step
        unallocated -= step * ledger.total_principal // CURVE_SCALE
        logger.info("ledger %s: shortfall charged to open certificates, rate step %s", ledger.id, step)
    ledger.unallocated_interest = unallocated


def feed(
    s: Session,
    env: Environment,
    ledger_id: int,
    caller: str,
    time: int,
    force: bool = False,
) -> FeedOutcome:
    with operation(s, env, ledger_id, "feed.force" if force else "feed"):
        ledger = get_active_ledger(s, ledger_id)
        require_role(env.roles, OPERATOR_ROLE, caller)

        t = check_feed_window(ledger.last_feed_time, time, env.now(), force)

        if is_empty(ledger):
            return FeedOutcome(posted=False, feed_time=ledger.last_feed_time)

        owed = liabilities(ledger)
        value = basket.basket_value(s, env, ledger)
        delta = value - owed

        check_delta(ledger, owed, delta, t - ledger.last_feed_time, slack=basket.count(s, ledger.id))

        if ledger.kind == OPEN_TERM:
            ledger.total_interest_bearing = max(0, ledger.total_interest_bearing + delta)
        else:
            allocated = _post_curve(s, ledger, t, delta)
            ledger.total_interest = ledger.total_interest + delta
            _settle_unallocated(ledger, ledger.unallocated_interest + delta - allocated)

        previous = ledger.last_feed_time
        ledger.last_feed_time = t

        log_event(
            s,
            ledger.id,
            actor=caller,
            action="feed.force" if force else "feed",
            details={"feed_time": t, "previous_feed_time": previous, "basket_value": value, "delta": delta},
        )
        logger.info("ledger %s fed for %s: basket %s, delta %s", ledger.id, t, value, delta)

    return FeedOutcome(posted=True, feed_time=t, basket_value=value, previous_liabilities=owed, delta=delta)


def curve_points(s: Session, ledger_id: int) -> list[RateCurvePoint]:
    return (
        s.execute(
            select(RateCurvePoint)
            .where(RateCurvePoint.ledger_id == ledger_id)
            .order_by(RateCurvePoint.feed_time.asc())
        )
        .scalars()
        .all()
    )
