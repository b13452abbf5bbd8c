from __future__ import annotations

import re
from io import BytesIO

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from basketledger.api.deps import current_user, db, environment, require_operator
from basketledger.core.errors import LedgerError
from basketledger.models.ledger import Ledger
from basketledger.schemas.ledger import (
    BasketAssetIn,
    BasketAssetOut,
    CollectFeeIn,
    CollectFeeOut,
    FeeRatesUpdate,
    LedgerCreate,
    LedgerOut,
    LimitsUpdate,
)
from basketledger.services import admin, basket
from basketledger.services.environment import Environment
from basketledger.services.ledgers import activate_ledger, create_ledger, get_ledger, list_ledgers
from basketledger.services.reports import build_ledger_report

router = APIRouter(prefix="/ledgers", tags=["ledgers"])


def _ledger_out(s: Session, env: Environment, ledger: Ledger) -> LedgerOut:
    assets = [BasketAssetOut(vault=a.vault, weight=a.weight) for a in basket.snapshot(s, ledger.id)]
    value = None
    if ledger.activated:
        try:
            value = basket.basket_value(s, env, ledger)
        except LedgerError:
            # a vault missing from this process' environment
            value = None
    return LedgerOut(
        id=ledger.id,
        name=ledger.name,
        kind=ledger.kind,
        address=ledger.address,
        token_address=ledger.token_address,
        lock_period=ledger.lock_period,
        schema_version=ledger.schema_version,
        activated=ledger.activated,
        paused=ledger.paused,
        stake_fee_rate=ledger.stake_fee_rate,
        unstake_fee_rate=ledger.unstake_fee_rate,
        dust_balance=ledger.dust_balance,
        max_supply=ledger.max_supply,
        max_interest_rate=ledger.max_interest_rate,
        max_loss_rate=ledger.max_loss_rate,
        last_feed_time=ledger.last_feed_time,
        total_fee=ledger.total_fee,
        total_interest_bearing=ledger.total_interest_bearing,
        total_shares=ledger.total_shares,
        total_principal=ledger.total_principal,
        total_interest=ledger.total_interest,
        unallocated_interest=ledger.unallocated_interest,
        basket=assets,
        basket_value=value,
        created_at=ledger.created_at,
    )


@router.get("", response_model=list[LedgerOut])
def list_all(s: Session = Depends(db), env: Environment = Depends(environment), u=Depends(current_user)):
    return [_ledger_out(s, env, ld) for ld in list_ledgers(s)]


@router.post("", response_model=LedgerOut)
def create(
    body: LedgerCreate,
    s: Session = Depends(db),
    env: Environment = Depends(environment),
    u: str = Depends(require_operator),
):
    ledger = create_ledger(s, env, u, body.name, body.kind, body.lock_period)
    ledger = activate_ledger(
        s,
        env,
        ledger.id,
        u,
        stake_fee_rate=body.stake_fee_rate,
        unstake_fee_rate=body.unstake_fee_rate,
        dust_balance=body.dust_balance,
        max_supply=body.max_supply,
        assets=[(a.vault, a.weight) for a in body.basket],
        max_interest_rate=body.max_interest_rate,
        max_loss_rate=body.max_loss_rate,
    )
    return _ledger_out(s, env, ledger)


@router.get("/{ledger_id}", response_model=LedgerOut)
def detail(ledger_id: int, s: Session = Depends(db), env: Environment = Depends(environment), u=Depends(current_user)):
    return _ledger_out(s, env, get_ledger(s, ledger_id))


@router.get("/{ledger_id}/basket", response_model=list[BasketAssetOut])
def basket_list(ledger_id: int, s: Session = Depends(db), u=Depends(current_user)):
    get_ledger(s, ledger_id)
    return [BasketAssetOut(vault=a.vault, weight=a.weight) for a in basket.snapshot(s, ledger_id)]


@router.post("/{ledger_id}/basket", response_model=BasketAssetOut)
def basket_add(
    ledger_id: int,
    body: BasketAssetIn,
    s: Session = Depends(db),
    env: Environment = Depends(environment),
    u: str = Depends(require_operator),
):
    info = admin.add_asset(s, env, ledger_id, u, body.vault, body.weight)
    return BasketAssetOut(vault=info.vault, weight=info.weight)


@router.put("/{ledger_id}/settings/fee-rates", response_model=LedgerOut)
def fee_rates(
    ledger_id: int,
    body: FeeRatesUpdate,
    s: Session = Depends(db),
    env: Environment = Depends(environment),
    u: str = Depends(require_operator),
):
    ledger = admin.update_fee_rates(s, env, ledger_id, u, body.stake_fee_rate, body.unstake_fee_rate)
    return _ledger_out(s, env, ledger)


@router.put("/{ledger_id}/settings/limits", response_model=LedgerOut)
def limits(
    ledger_id: int,
    body: LimitsUpdate,
    s: Session = Depends(db),
    env: Environment = Depends(environment),
    u: str = Depends(require_operator),
):
    ledger = admin.update_limits(s, env, ledger_id, u, body.dust_balance, body.max_supply)
    return _ledger_out(s, env, ledger)


@router.post("/{ledger_id}/pause", response_model=LedgerOut)
def pause(ledger_id: int, s: Session = Depends(db), env: Environment = Depends(environment), u: str = Depends(require_operator)):
    return _ledger_out(s, env, admin.set_paused(s, env, ledger_id, u, True))


@router.post("/{ledger_id}/unpause", response_model=LedgerOut)
def unpause(ledger_id: int, s: Session = Depends(db), env: Environment = Depends(environment), u: str = Depends(require_operator)):
    return _ledger_out(s, env, admin.set_paused(s, env, ledger_id, u, False))


@router.post("/{ledger_id}/fees/collect", response_model=CollectFeeOut)
def collect(
    ledger_id: int,
    body: CollectFeeIn,
    s: Session = Depends(db),
    env: Environment = Depends(environment),
    u: str = Depends(require_operator),
):
    amount = admin.collect_fee(s, env, ledger_id, u, body.recipient)
    return CollectFeeOut(recipient=body.recipient, amount=amount)


def _safe_part(v: str) -> str:
    s = (v or "").strip()
    s = re.sub(r"\s+", "_", s)
    s = re.sub(r"[^A-Za-z0-9._-]+", "_", s)
    s = re.sub(r"_+", "_", s).strip("_")
    return (s[:40] or "unknown")


@router.get("/{ledger_id}/report")
def report(ledger_id: int, s: Session = Depends(db), env: Environment = Depends(environment), u=Depends(current_user)):
    buf = BytesIO()
    build_ledger_report(s, env, ledger_id, buf)
    buf.seek(0)

    ledger = get_ledger(s, ledger_id)
    filename = f"{_safe_part(ledger.name)}_statement.xlsx"
    return StreamingResponse(
        buf,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
