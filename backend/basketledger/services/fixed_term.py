from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from basketledger.core.constants import CERT_ACTIVE, CERT_CLOSED, CURVE_SCALE, FIXED_TERM, OPERATOR_ROLE, PRECISION
from basketledger.core.errors import (
    BelowDustBalance,
    CertificateClosed,
    CertificateNotFound,
    ExceedsMaxSupply,
    InsufficientFunds,
    InvalidAmount,
    NotMatured,
    NotOwner,
    Paused,
    PoolBankrupt,
    WaitingForMaturityFeed,
)
from basketledger.models.certificate import Certificate
from basketledger.models.ledger import Ledger
from basketledger.models.rate_curve import PrincipalSchedule, RateCurvePoint
from basketledger.services import basket
from basketledger.services.audit import log_event
from basketledger.services.environment import Environment, operation
from basketledger.services.ledgers import get_active_ledger, is_empty, reopen_accrual
from basketledger.services.membership import require_member
from basketledger.utils.dates import normalize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CertificateView:
    token_id: int
    owner: str
    principal: int
    interest: int
    start_date: int
    maturity_date: int
    status: str
    redeemable: bool


@dataclass(frozen=True)
class RedeemOutcome:
    token_id: int
    principal: int
    interest: int
    fee: int
    paid: int


def _curve_at_or_before(s: Session, ledger_id: int, t: int) -> RateCurvePoint | None:
    return (
        s.execute(
            select(RateCurvePoint)
            .where(RateCurvePoint.ledger_id == ledger_id, RateCurvePoint.feed_time <= t)
            .order_by(RateCurvePoint.feed_time.desc())
            .limit(1)
        )
        .scalars()
        .first()
    )


def _curve_at_or_after(s: Session, ledger_id: int, t: int) -> RateCurvePoint | None:
    return (
        s.execute(
            select(RateCurvePoint)
            .where(RateCurvePoint.ledger_id == ledger_id, RateCurvePoint.feed_time >= t)
            .order_by(RateCurvePoint.feed_time.asc())
            .limit(1)
        )
        .scalars()
        .first()
    )


def curve_interest(s: Session, cert: Certificate) -> int:
    """Interest earned between the first feed at/after start and the last one at/before maturity."""
    first = _curve_at_or_after(s, cert.ledger_id, cert.start_date)
    last = _curve_at_or_before(s, cert.ledger_id, cert.maturity_date)
    if first is None or last is None or last.feed_time <= first.feed_time:
        return 0
    return cert.principal * (last.accumulated_rate - first.accumulated_rate) // CURVE_SCALE


def settlement_share(ledger: Ledger, cert: Certificate) -> int:
    # shortfalls settled while the certificate was open; never positive
    return cert.principal * (ledger.settlement_rate - cert.settlement_base) // CURVE_SCALE


def certificate_interest(s: Session, ledger: Ledger, cert: Certificate) -> int:
    return curve_interest(s, cert) + settlement_share(ledger, cert)


def get_certificate(s: Session, ledger_id: int, token_id: int) -> Certificate:
    cert = (
        s.execute(select(Certificate).where(Certificate.ledger_id == ledger_id, Certificate.token_id == token_id))
        .scalars()
        .first()
    )
    if cert is None:
        raise CertificateNotFound(ledger_id=ledger_id, token_id=token_id)
    return cert


def _view(s: Session, ledger: Ledger, cert: Certificate, now: int) -> CertificateView:
    if cert.status == CERT_CLOSED:
        interest = cert.interest_paid or 0
    else:
        interest = certificate_interest(s, ledger, cert)
    redeemable = (
        cert.status == CERT_ACTIVE
        and normalize(now) >= cert.maturity_date
        and ledger.last_feed_time >= cert.maturity_date
    )
    return CertificateView(
        token_id=cert.token_id,
        owner=cert.owner,
        principal=cert.principal,
        interest=interest,
        start_date=cert.start_date,
        maturity_date=cert.maturity_date,
        status=cert.status,
        redeemable=redeemable,
    )


def certificate_value(s: Session, env: Environment, ledger_id: int, token_id: int) -> CertificateView:
    ledger = get_active_ledger(s, ledger_id, FIXED_TERM)
    return _view(s, ledger, get_certificate(s, ledger_id, token_id), env.now())


def list_certificates(s: Session, env: Environment, ledger_id: int, owner: str | None = None) -> list[CertificateView]:
    ledger = get_active_ledger(s, ledger_id, FIXED_TERM)
    q = select(Certificate).where(Certificate.ledger_id == ledger_id)
    if owner:
        q = q.where(Certificate.owner == owner)
    certs = s.execute(q.order_by(Certificate.token_id.asc())).scalars().all()
    now = env.now()
    return [_view(s, ledger, c, now) for c in certs]


def _schedule_principal(s: Session, ledger_id: int, start: int, principal: int) -> None:
    row = (
        s.execute(
            select(PrincipalSchedule).where(
                PrincipalSchedule.ledger_id == ledger_id,
                PrincipalSchedule.start_date == start,
            )
        )
        .scalars()
        .first()
    )
    if row is None:
        s.add(PrincipalSchedule(ledger_id=ledger_id, start_date=start, principal=principal))
    else:
        row.principal = row.principal + principal


def stake(s: Session, env: Environment, ledger_id: int, caller: str, amount: int) -> Certificate:
    return stake_from(s, env, ledger_id, caller, amount, beneficiary=caller)


def stake_from(
    s: Session,
    env: Environment,
    ledger_id: int,
    caller: str,
    amount: int,
    beneficiary: str,
) -> Certificate:
    """Lock ``amount`` from ``caller`` into a new certificate owned by ``beneficiary``."""
    with operation(s, env, ledger_id, "fixed.stake"):
        ledger = get_active_ledger(s, ledger_id, FIXED_TERM)
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
        principal = amount - fee
        if principal <= 0:
            raise InvalidAmount(amount=amount, fee=fee)

        new_total = ledger.total_principal + principal
        if new_total > ledger.max_supply:
            raise ExceedsMaxSupply(max_supply=ledger.max_supply, resulting=new_total)
        if new_total < ledger.dust_balance:
            raise BelowDustBalance(dust_balance=ledger.dust_balance, resulting=new_total)

        if is_empty(ledger):
            reopen_accrual(ledger, env.now())
        start = normalize(env.now())
        maturity = start + int(ledger.lock_period)
        token_id = ledger.next_token_id

        cert = Certificate(
            ledger_id=ledger.id,
            token_id=token_id,
            owner=beneficiary,
            principal=principal,
            start_date=start,
            maturity_date=maturity,
            status=CERT_ACTIVE,
            settlement_base=ledger.settlement_rate,
        )
        s.add(cert)
        _schedule_principal(s, ledger.id, start, principal)
        ledger.next_token_id = token_id + 1
        ledger.total_principal = new_total
        ledger.total_fee = ledger.total_fee + fee
        s.flush()

        env.token.transfer_from(ledger.address, caller, ledger.address, amount)
        basket.deposit_pro_rata(s, env, ledger, principal)

        log_event(
            s,
            ledger.id,
            actor=caller,
            action="fixed.stake",
            entity_type="certificate",
            entity_id=cert.id,
            details={
                "token_id": token_id,
                "beneficiary": beneficiary,
                "amount": amount,
                "fee": fee,
                "principal": principal,
                "start_date": start,
                "maturity_date": maturity,
            },
        )
        logger.info("ledger %s certificate %s: principal %s maturing %s", ledger.id, token_id, principal, maturity)
    s.refresh(cert)
    return cert


def unstake(s: Session, env: Environment, ledger_id: int, caller: str, token_id: int) -> RedeemOutcome:
    return unstake_from(s, env, ledger_id, caller, token_id, owner=caller)


def unstake_from(
    s: Session,
    env: Environment,
    ledger_id: int,
    caller: str,
    token_id: int,
    owner: str,
) -> RedeemOutcome:
    with operation(s, env, ledger_id, "fixed.unstake"):
        ledger = get_active_ledger(s, ledger_id, FIXED_TERM)
        require_member(env.gate, caller, owner)
        if caller != owner and not env.roles.has_role(OPERATOR_ROLE, caller):
            raise NotOwner(caller=caller, owner=owner)

        cert = get_certificate(s, ledger_id, token_id)
        if cert.owner != owner:
            raise NotOwner(token_id=token_id, owner=owner)
        if cert.status == CERT_CLOSED:
            raise CertificateClosed(token_id=token_id)

        today = normalize(env.now())
        if today < cert.maturity_date:
            raise NotMatured(token_id=token_id, maturity_date=cert.maturity_date, today=today)
        if ledger.last_feed_time < cert.maturity_date:
            raise WaitingForMaturityFeed(
                token_id=token_id,
                maturity_date=cert.maturity_date,
                last_feed_time=ledger.last_feed_time,
            )
        if ledger.total_principal + ledger.total_interest <= 0:
            raise PoolBankrupt(ledger_id=ledger_id)

        interest = certificate_interest(s, ledger, cert)
        payout = max(0, cert.principal + interest)
        fee = payout * ledger.unstake_fee_rate // PRECISION
        paid = payout - fee

        ledger.total_principal = ledger.total_principal - cert.principal
        ledger.total_interest = ledger.total_interest - (payout - cert.principal)
        ledger.total_fee = ledger.total_fee + fee
        cert.status = CERT_CLOSED
        cert.interest_paid = payout - cert.principal
        cert.closed_at = env.now()
        s.flush()

        if payout > 0:
            basket.withdraw_pro_rata(s, env, ledger, payout)
        if paid > 0:
            env.token.transfer(ledger.address, owner, paid)

        log_event(
            s,
            ledger.id,
            actor=caller,
            action="fixed.unstake",
            entity_type="certificate",
            entity_id=cert.id,
            details={
                "token_id": token_id,
                "owner": owner,
                "principal": cert.principal,
                "interest": payout - cert.principal,
                "fee": fee,
                "paid": paid,
            },
        )
        logger.info("ledger %s certificate %s redeemed: paid %s (fee %s)", ledger.id, token_id, paid, fee)

    return RedeemOutcome(token_id=token_id, principal=cert.principal, interest=payout - cert.principal, fee=fee, paid=paid)
