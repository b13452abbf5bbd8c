import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from basketledger.core.constants import DAY, FIXED_TERM, OPEN_TERM, OPERATOR_ROLE
from basketledger.db.base import Base
import basketledger.models.audit_log  # noqa: F401
import basketledger.models.basket_asset  # noqa: F401
import basketledger.models.certificate  # noqa: F401
import basketledger.models.ledger  # noqa: F401
import basketledger.models.rate_curve  # noqa: F401
import basketledger.models.share_position  # noqa: F401
from basketledger.services import basket
from basketledger.services.environment import Environment, FixedClock
from basketledger.services.ledgers import activate_ledger, create_ledger
from basketledger.services.membership import AllowList, StaticRoles
from basketledger.services.token import InMemoryToken
from basketledger.services.vaults import InMemoryVault, VaultRegistry

# 2024-01-01 12:00 UTC; its accounting day closes 2024-01-02 07:00 UTC
NOW = 1704110400
OPERATOR = "operator"


@pytest.fixture(scope="session")
def engine():
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    # let pysqlite honour SAVEPOINT so services can commit inside a test transaction
    @event.listens_for(eng, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session(engine):
    connection = engine.connect()
    trans = connection.begin()
    Session = sessionmaker(
        bind=connection,
        autoflush=False,
        autocommit=False,
        future=True,
        join_transaction_mode="create_savepoint",
    )
    s = Session()
    try:
        yield s
    finally:
        s.close()
        trans.rollback()
        connection.close()


@pytest.fixture()
def env():
    token = InMemoryToken("0xunit")
    vaults = VaultRegistry([InMemoryVault("vault-a", token), InMemoryVault("vault-b", token)])
    return Environment(
        token=token,
        vaults=vaults,
        gate=AllowList(["alice", "bob", OPERATOR]),
        roles=StaticRoles({OPERATOR_ROLE: [OPERATOR]}),
        clock=FixedClock(NOW),
    )


def fund(env, owner: str, spender: str, amount: int) -> None:
    env.token.mint(owner, amount)
    env.token.approve(owner, spender, env.token.allowance(owner, spender) + amount)


@pytest.fixture()
def make_ledger(session, env):
    counter = {"n": 0}

    def _make(
        kind: str = OPEN_TERM,
        *,
        assets=(("vault-a", 500_000), ("vault-b", 500_000)),
        stake_fee_rate: int = 0,
        unstake_fee_rate: int = 0,
        dust_balance: int = 0,
        max_supply: int = 10**12,
        lock_period: int | None = None,
        **kw,
    ):
        counter["n"] += 1
        if kind == FIXED_TERM and lock_period is None:
            lock_period = 2 * DAY
        ledger = create_ledger(session, env, OPERATOR, f"{kind}-{counter['n']}", kind, lock_period)
        return activate_ledger(
            session,
            env,
            ledger.id,
            OPERATOR,
            stake_fee_rate=stake_fee_rate,
            unstake_fee_rate=unstake_fee_rate,
            dust_balance=dust_balance,
            max_supply=max_supply,
            assets=list(assets),
            **kw,
        )

    return _make


def custody_total(session, env, ledger) -> int:
    """Idle custody balance plus what the basket is worth."""
    return env.token.balance_of(ledger.address) + basket.basket_value(session, env, ledger)


class SkimmingVault(InMemoryVault):
    """Keeps half of every deposit for itself."""

    def deposit(self, assets: int, receiver: str) -> int:
        shares = super().deposit(assets, receiver)
        self.token.transfer(self.address, "skim", assets // 2)
        return shares


class ShortPayingVault(InMemoryVault):
    """Burns the full share amount but pays out only half."""

    def withdraw(self, assets: int, receiver: str, owner: str) -> int:
        shares = super().withdraw(assets, receiver, owner)
        self.token.transfer(receiver, self.address, assets - assets // 2)
        return shares


class CallbackVault(InMemoryVault):
    def __init__(self, address, token, on_deposit=None):
        super().__init__(address, token)
        self.on_deposit = on_deposit

    def deposit(self, assets: int, receiver: str) -> int:
        if self.on_deposit is not None:
            self.on_deposit()
        return super().deposit(assets, receiver)
