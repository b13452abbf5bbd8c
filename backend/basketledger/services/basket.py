from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from basketledger.core.constants import PRECISION
from basketledger.core.errors import (
    AssetMismatch,
    BasketShortfall,
    DepositShortfall,
    DuplicateVault,
    EmptyBasket,
    InvalidAddress,
    InvalidWeight,
    WeightOverflow,
    WithdrawShortfall,
)
from basketledger.models.basket_asset import BasketAsset
from basketledger.models.ledger import Ledger
from basketledger.services.environment import Environment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssetInfo:
    vault: str
    weight: int


def _assets(s: Session, ledger_id: int) -> list[BasketAsset]:
    return (
        s.execute(
            select(BasketAsset)
            .where(BasketAsset.ledger_id == ledger_id)
            .order_by(BasketAsset.position.asc())
        )
        .scalars()
        .all()
    )


def count(s: Session, ledger_id: int) -> int:
    return int(
        s.execute(select(func.count()).select_from(BasketAsset).where(BasketAsset.ledger_id == ledger_id)).scalar_one()
        or 0
    )


def asset_at(s: Session, ledger_id: int, index: int) -> AssetInfo:
    row = (
        s.execute(select(BasketAsset).where(BasketAsset.ledger_id == ledger_id, BasketAsset.position == index))
        .scalars()
        .first()
    )
    if row is None:
        raise IndexError(f"basket of ledger {ledger_id} has no asset at {index}")
    return AssetInfo(vault=row.vault_address, weight=row.weight)


def snapshot(s: Session, ledger_id: int) -> list[AssetInfo]:
    return [AssetInfo(vault=a.vault_address, weight=a.weight) for a in _assets(s, ledger_id)]


def total_weight(s: Session, ledger_id: int) -> int:
    return sum((a.weight for a in _assets(s, ledger_id)), 0)


def add_asset(s: Session, env: Environment, ledger: Ledger, vault_address: str, weight: int) -> AssetInfo:
    """Append one vault to the ledger's basket.

    Existing members are never removed or reweighted.
    """
    vault_address = (vault_address or "").strip()
    if not vault_address:
        raise InvalidAddress(field="vault")
    if weight is None or weight <= 0:
        raise InvalidWeight(vault=vault_address, weight=weight)

    vault = env.vaults.get(vault_address)
    if vault.asset() != ledger.token_address:
        raise AssetMismatch(vault=vault_address, expected=ledger.token_address, actual=vault.asset())

    current = _assets(s, ledger.id)
    if any(a.vault_address == vault_address for a in current):
        raise DuplicateVault(vault=vault_address)

    new_total = sum((a.weight for a in current), 0) + weight
    if new_total > PRECISION:
        raise WeightOverflow(vault=vault_address, total=new_total, limit=PRECISION)

    s.add(BasketAsset(ledger_id=ledger.id, position=len(current), vault_address=vault_address, weight=weight))
    s.flush()
    logger.info("ledger %s basket += %s (weight %s, total %s)", ledger.id, vault_address, weight, new_total)
    return AssetInfo(vault=vault_address, weight=weight)


def vault_values(s: Session, env: Environment, ledger: Ledger) -> list[tuple[str, int]]:
    out: list[tuple[str, int]] = []
    for a in _assets(s, ledger.id):
        v = env.vaults.get(a.vault_address)
        out.append((a.vault_address, v.convert_to_assets(v.balance_of(ledger.address))))
    return out


def basket_value(s: Session, env: Environment, ledger: Ledger) -> int:
    return sum((value for _, value in vault_values(s, env, ledger)), 0)


def split_by_weight(amount: int, weights: list[int]) -> list[int]:
    total = sum(weights)
    if not weights or total <= 0:
        raise EmptyBasket()
    parts = [amount * w // total for w in weights[:-1]]
    parts.append(amount - sum(parts))
    return parts


def split_by_value(amount: int, values: list[int]) -> list[int]:
    total = sum(values)
    if total <= 0:
        return [0 for _ in values]
    parts = [amount * v // total for v in values]
    remainder = amount - sum(parts)
    i = 0
    while remainder > 0 and i < len(parts):
        if parts[i] < values[i]:
            parts[i] += 1
            remainder -= 1
        else:
            i += 1
    return parts


def deposit_pro_rata(s: Session, env: Environment, ledger: Ledger, amount: int) -> None:
    assets = _assets(s, ledger.id)
    parts = split_by_weight(amount, [a.weight for a in assets])

    for a, part in zip(assets, parts):
        if part <= 0:
            continue
        vault = env.vaults.get(a.vault_address)
        env.token.approve(ledger.address, vault.address, part)
        shares = vault.deposit(part, ledger.address)
        env.token.approve(ledger.address, vault.address, 0)

        actual = vault.convert_to_assets(shares)
        slack = vault.convert_to_assets(1) + 1
        if part - actual > slack:
            raise DepositShortfall(vault=vault.address, expected=part, actual=actual)


def withdraw_pro_rata(s: Session, env: Environment, ledger: Ledger, amount: int) -> None:
    """Pull ``amount`` out of the basket into the ledger's custody account."""
    values = vault_values(s, env, ledger)
    available = sum((v for _, v in values), 0)
    if amount > available:
        raise BasketShortfall(ledger_id=ledger.id, required=amount, available=available)

    parts = split_by_value(amount, [v for _, v in values])
    for (address, _), part in zip(values, parts):
        if part <= 0:
            continue
        vault = env.vaults.get(address)
        before = env.token.balance_of(ledger.address)
        vault.withdraw(part, ledger.address, ledger.address)
        received = env.token.balance_of(ledger.address) - before
        if received < part:
            raise WithdrawShortfall(vault=address, expected=part, actual=received)
