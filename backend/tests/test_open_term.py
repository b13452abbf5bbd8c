import pytest

from basketledger.core.constants import DAY
from basketledger.core.errors import (
    BasketShortfall,
    BelowDustBalance,
    DepositShortfall,
    ExceedsMaxSupply,
    InsufficientFunds,
    NotMember,
    NotOwner,
    Paused,
    PoolBankrupt,
    ReentrantCall,
    WithdrawShortfall,
    WrongLedgerKind,
)
from basketledger.models.share_position import SharePosition
from basketledger.services import basket, open_term
from basketledger.services.admin import set_paused
from basketledger.services.feed import feed
from basketledger.services.ledgers import get_ledger

from conftest import OPERATOR, CallbackVault, ShortPayingVault, SkimmingVault, custody_total, fund


def test_stake_splits_net_by_weight_and_keeps_fee_idle(session, env, make_ledger):
    ledger = make_ledger(stake_fee_rate=1_000)
    fund(env, "alice", ledger.address, 1_000_000)

    out = open_term.stake(session, env, ledger.id, "alice", 1_000_000)

    ledger = get_ledger(session, ledger.id)
    assert (out.fee, out.net, out.shares) == (1_000, 999_000, 999_000)
    assert custody_total(session, env, ledger) == 1_000_000
    assert ledger.total_fee + ledger.total_interest_bearing == custody_total(session, env, ledger)
    assert dict(basket.vault_values(session, env, ledger)) == {"vault-a": 499_500, "vault-b": 499_500}
    assert env.token.balance_of(ledger.address) == 1_000
    assert env.token.balance_of("alice") == 0


def test_round_trip_returns_principal_minus_fees(session, env, make_ledger):
    ledger = make_ledger(stake_fee_rate=1_000, unstake_fee_rate=2_000)
    fund(env, "alice", ledger.address, 1_000_000)

    open_term.stake(session, env, ledger.id, "alice", 1_000_000)
    out = open_term.unstake(session, env, ledger.id, "alice", 999_000)

    ledger = get_ledger(session, ledger.id)
    assert out.fee == 1_998
    assert env.token.balance_of("alice") == 1_000_000 - 1_000 - 1_998
    assert ledger.total_interest_bearing == 0
    assert ledger.total_shares == 0
    assert ledger.total_fee == 2_998
    assert env.token.balance_of(ledger.address) == 2_998


def test_cap_and_dust_boundaries(session, env, make_ledger):
    ledger = make_ledger(dust_balance=100_000, max_supply=1_000_000)
    fund(env, "alice", ledger.address, 3_000_000)

    with pytest.raises(ExceedsMaxSupply):
        open_term.stake(session, env, ledger.id, "alice", 1_000_001)
    with pytest.raises(BelowDustBalance):
        open_term.stake(session, env, ledger.id, "alice", 99_999)

    open_term.stake(session, env, ledger.id, "alice", 100_000)
    open_term.stake(session, env, ledger.id, "alice", 900_000)
    with pytest.raises(ExceedsMaxSupply):
        open_term.stake(session, env, ledger.id, "alice", 1)

    with pytest.raises(BelowDustBalance):
        open_term.unstake(session, env, ledger.id, "alice", 950_000)
    open_term.unstake(session, env, ledger.id, "alice", 900_000)
    out = open_term.unstake(session, env, ledger.id, "alice", 100_000)
    assert out.amount == 100_000
    assert get_ledger(session, ledger.id).total_interest_bearing == 0


def test_oversized_unstake_clamps_to_owned_claim(session, env, make_ledger):
    ledger = make_ledger()
    fund(env, "alice", ledger.address, 1_000_000)
    fund(env, "bob", ledger.address, 500_000)
    open_term.stake(session, env, ledger.id, "alice", 1_000_000)
    open_term.stake(session, env, ledger.id, "bob", 500_000)

    out = open_term.unstake(session, env, ledger.id, "alice", 5_000_000)

    assert out.amount == 1_000_000
    assert out.shares == 1_000_000
    assert env.token.balance_of("alice") == 1_000_000
    assert open_term.position_of(session, ledger.id, "alice").shares == 0
    assert open_term.position_of(session, ledger.id, "bob").value == 500_000


def test_interest_goes_to_existing_shares(session, env, make_ledger):
    ledger = make_ledger()
    fund(env, "alice", ledger.address, 1_000_000)
    fund(env, "bob", ledger.address, 1_001_000)
    open_term.stake(session, env, ledger.id, "alice", 1_000_000)

    env.clock.advance(DAY)
    env.vaults.get("vault-a").accrue(1_000)
    feed(session, env, ledger.id, OPERATOR, env.now())

    out = open_term.stake(session, env, ledger.id, "bob", 1_001_000)
    assert out.shares == 1_000_000
    assert open_term.position_of(session, ledger.id, "alice").value == 1_001_000

    part = open_term.unstake(session, env, ledger.id, "alice", 1_000)
    assert part.shares == 1_000
    assert open_term.position_of(session, ledger.id, "alice").shares == 999_000


def test_partial_loss_is_shared_through_the_share_price(session, env, make_ledger):
    ledger = make_ledger(max_loss_rate=100_000_000)
    fund(env, "alice", ledger.address, 1_000_000)
    open_term.stake(session, env, ledger.id, "alice", 1_000_000)

    env.clock.advance(DAY)
    env.vaults.get("vault-a").lose(200_000)
    feed(session, env, ledger.id, OPERATOR, env.now())

    assert get_ledger(session, ledger.id).total_interest_bearing == 800_000
    out = open_term.unstake(session, env, ledger.id, "alice", 10**9)
    assert out.paid == 800_000


def test_total_loss_floors_at_zero_and_bankrupts_the_pool(session, env, make_ledger):
    ledger = make_ledger(max_loss_rate=1_000_000_000)
    fund(env, "alice", ledger.address, 1_000_000)
    fund(env, "bob", ledger.address, 1_000)
    open_term.stake(session, env, ledger.id, "alice", 1_000_000)

    env.clock.advance(DAY)
    env.vaults.get("vault-a").accrue(1_000)
    feed(session, env, ledger.id, OPERATOR, env.now())

    env.clock.advance(DAY)
    for v in env.vaults:
        v.lose(v.total_assets())
    out = feed(session, env, ledger.id, OPERATOR, env.now())

    ledger = get_ledger(session, ledger.id)
    assert out.delta == -1_001_000
    assert ledger.total_interest_bearing == 0
    assert ledger.total_shares == 1_000_000

    with pytest.raises(PoolBankrupt):
        open_term.unstake(session, env, ledger.id, "alice", 1)
    with pytest.raises(PoolBankrupt):
        open_term.stake(session, env, ledger.id, "bob", 1_000)


def test_pause_blocks_stake_but_not_unstake(session, env, make_ledger):
    ledger = make_ledger()
    fund(env, "alice", ledger.address, 2_000)
    open_term.stake(session, env, ledger.id, "alice", 1_000)

    set_paused(session, env, ledger.id, OPERATOR, True)
    with pytest.raises(Paused):
        open_term.stake(session, env, ledger.id, "alice", 1_000)
    open_term.unstake(session, env, ledger.id, "alice", 500)

    set_paused(session, env, ledger.id, OPERATOR, False)
    open_term.stake(session, env, ledger.id, "alice", 1_000)
    assert open_term.position_of(session, ledger.id, "alice").value == 1_500


def test_membership_and_ownership(session, env, make_ledger):
    ledger = make_ledger()
    fund(env, "carol", ledger.address, 1_000)
    fund(env, "alice", ledger.address, 1_000)

    with pytest.raises(NotMember):
        open_term.stake(session, env, ledger.id, "carol", 1_000)
    with pytest.raises(NotMember):
        open_term.stake_from(session, env, ledger.id, "alice", 1_000, "carol")

    open_term.stake(session, env, ledger.id, "alice", 1_000)
    with pytest.raises(NotOwner):
        open_term.unstake_from(session, env, ledger.id, "bob", 1_000, "alice")

    out = open_term.unstake_from(session, env, ledger.id, OPERATOR, 1_000, "alice")
    assert out.paid == 1_000
    assert env.token.balance_of("alice") == 1_000
    assert env.token.balance_of(OPERATOR) == 0


def test_stake_for_beneficiary(session, env, make_ledger):
    ledger = make_ledger()
    fund(env, "alice", ledger.address, 1_000)

    open_term.stake_from(session, env, ledger.id, "alice", 1_000, "bob")

    rows = session.query(SharePosition).filter(SharePosition.ledger_id == ledger.id).all()
    assert [(r.owner, r.shares) for r in rows] == [("bob", 1_000)]
    assert [p.owner for p in open_term.list_positions(session, ledger.id)] == ["bob"]


def test_stake_needs_balance_and_allowance(session, env, make_ledger):
    ledger = make_ledger()
    env.token.mint("alice", 1_000)

    with pytest.raises(InsufficientFunds):
        open_term.stake(session, env, ledger.id, "alice", 1_000)
    assert env.token.balance_of("alice") == 1_000


def test_open_term_calls_refuse_a_fixed_term_ledger(session, env, make_ledger):
    ledger = make_ledger("fixed_term")
    fund(env, "alice", ledger.address, 1_000)
    with pytest.raises(WrongLedgerKind):
        open_term.stake(session, env, ledger.id, "alice", 1_000)


def test_deposit_shortfall_rolls_everything_back(session, env, make_ledger):
    env.vaults.register(SkimmingVault("vault-s", env.token))
    ledger = make_ledger(assets=[("vault-a", 500_000), ("vault-s", 500_000)])
    fund(env, "alice", ledger.address, 1_000_000)

    with pytest.raises(DepositShortfall) as ei:
        open_term.stake(session, env, ledger.id, "alice", 1_000_000)

    assert ei.value.params["vault"] == "vault-s"
    ledger = get_ledger(session, ledger.id)
    assert ledger.total_interest_bearing == 0
    assert ledger.total_shares == 0
    assert env.token.balance_of("alice") == 1_000_000
    assert env.token.allowance("alice", ledger.address) == 1_000_000
    assert env.token.balance_of("skim") == 0
    assert env.vaults.get("vault-a").total_supply == 0
    assert open_term.list_positions(session, ledger.id) == []


def test_withdraw_shortfall_rolls_everything_back(session, env, make_ledger):
    env.vaults.register(ShortPayingVault("vault-p", env.token))
    ledger = make_ledger(assets=[("vault-a", 500_000), ("vault-p", 500_000)])
    fund(env, "alice", ledger.address, 1_000_000)
    open_term.stake(session, env, ledger.id, "alice", 1_000_000)

    with pytest.raises(WithdrawShortfall) as ei:
        open_term.unstake(session, env, ledger.id, "alice", 1_000_000)

    assert ei.value.params["vault"] == "vault-p"
    ledger = get_ledger(session, ledger.id)
    assert ledger.total_interest_bearing == 1_000_000
    assert open_term.position_of(session, ledger.id, "alice").shares == 1_000_000
    assert env.token.balance_of("alice") == 0
    assert basket.basket_value(session, env, ledger) == 1_000_000


def test_vault_calling_back_into_the_ledger_is_rejected(session, env, make_ledger):
    vault = env.vaults.register(CallbackVault("vault-r", env.token))
    ledger = make_ledger(assets=[("vault-r", 1_000_000)])
    ledger_id = ledger.id
    fund(env, "alice", ledger.address, 1_000)
    fund(env, "bob", ledger.address, 10)
    vault.on_deposit = lambda: open_term.stake(session, env, ledger_id, "bob", 10)

    with pytest.raises(ReentrantCall):
        open_term.stake(session, env, ledger_id, "alice", 1_000)

    assert env.token.balance_of("alice") == 1_000
    assert get_ledger(session, ledger_id).total_interest_bearing == 0

    vault.on_deposit = None
    assert open_term.stake(session, env, ledger_id, "alice", 1_000).shares == 1_000


def test_unposted_loss_is_an_accounting_shortfall_not_a_vault_failure(session, env, make_ledger):
    ledger = make_ledger()
    fund(env, "alice", ledger.address, 1_000_000)
    open_term.stake(session, env, ledger.id, "alice", 1_000_000)
    env.vaults.get("vault-a").lose(1_000)

    with pytest.raises(BasketShortfall) as ei:
        open_term.unstake(session, env, ledger.id, "alice", 1_000_000)

    assert ei.value.params == {"ledger_id": ledger.id, "required": 1_000_000, "available": 999_000}
    assert open_term.position_of(session, ledger.id, "alice").shares == 1_000_000

    env.clock.advance(DAY)
    feed(session, env, ledger.id, OPERATOR, env.now())
    assert open_term.unstake(session, env, ledger.id, "alice", 10**9).paid == 999_000
