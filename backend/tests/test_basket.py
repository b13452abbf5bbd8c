import pytest

from basketledger.core.errors import (
    AssetMismatch,
    DuplicateVault,
    EmptyBasket,
    InvalidAddress,
    InvalidWeight,
    UnknownVault,
    WeightOverflow,
)
from basketledger.services import basket
from basketledger.services.admin import add_asset
from basketledger.services.token import InMemoryToken
from basketledger.services.vaults import InMemoryVault

from conftest import OPERATOR


def test_activation_records_basket_in_order(session, env, make_ledger):
    ledger = make_ledger(assets=[("vault-a", 300_000), ("vault-b", 700_000)])

    assert basket.count(session, ledger.id) == 2
    assert basket.asset_at(session, ledger.id, 0).vault == "vault-a"
    assert basket.asset_at(session, ledger.id, 1).weight == 700_000
    assert [a.vault for a in basket.snapshot(session, ledger.id)] == ["vault-a", "vault-b"]
    with pytest.raises(IndexError):
        basket.asset_at(session, ledger.id, 2)


def test_add_asset_rejects_bad_input(session, env, make_ledger):
    other = InMemoryToken("0xother")
    env.vaults.register(InMemoryVault("vault-x", other))
    env.vaults.register(InMemoryVault("vault-c", env.token))
    ledger = make_ledger(assets=[("vault-a", 400_000)])

    with pytest.raises(InvalidAddress):
        add_asset(session, env, ledger.id, OPERATOR, "  ", 1)
    with pytest.raises(InvalidWeight):
        add_asset(session, env, ledger.id, OPERATOR, "vault-c", 0)
    with pytest.raises(UnknownVault):
        add_asset(session, env, ledger.id, OPERATOR, "nowhere", 1)
    with pytest.raises(AssetMismatch):
        add_asset(session, env, ledger.id, OPERATOR, "vault-x", 1)
    with pytest.raises(DuplicateVault):
        add_asset(session, env, ledger.id, OPERATOR, "vault-a", 1)
    with pytest.raises(WeightOverflow):
        add_asset(session, env, ledger.id, OPERATOR, "vault-b", 600_001)

    info = add_asset(session, env, ledger.id, OPERATOR, "vault-b", 600_000)
    assert info.weight == 600_000
    assert basket.total_weight(session, ledger.id) == 1_000_000
    assert basket.count(session, ledger.id) == 2


def test_empty_basket_cannot_activate(make_ledger):
    with pytest.raises(EmptyBasket):
        make_ledger(assets=[])


def test_split_by_weight_gives_remainder_to_last_vault():
    assert basket.split_by_weight(1_000_001, [500_000, 500_000]) == [500_000, 500_001]
    assert basket.split_by_weight(10, [1, 1, 1]) == [3, 3, 4]
    assert sum(basket.split_by_weight(999_999, [123, 456, 789])) == 999_999


def test_split_by_value_never_asks_more_than_a_vault_holds():
    parts = basket.split_by_value(10, [3, 3, 4])
    assert sum(parts) == 10
    assert all(p <= v for p, v in zip(parts, [3, 3, 4]))

    parts = basket.split_by_value(7, [1, 1, 100])
    assert sum(parts) == 7
    assert parts[0] <= 1 and parts[1] <= 1

    assert basket.split_by_value(5, [0, 0]) == [0, 0]
