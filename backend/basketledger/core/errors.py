from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base for every ledger failure.

    Each subclass carries a stable ``code`` and the parameters that describe
    the failure, so callers can branch on it without parsing messages.
    """

    code = "ledger_error"
    status = 400

    def __init__(self, **params: Any):
        self.params = params
        detail = ", ".join(f"{k}={v}" for k, v in params.items())
        super().__init__(f"{self.code}({detail})" if detail else self.code)

    def to_detail(self) -> dict:
        return {"code": self.code, "params": {k: _jsonable(v) for k, v in self.params.items()}}


def _jsonable(v: Any) -> Any:
    # amounts can exceed the JSON safe-integer range
    if isinstance(v, int) and not isinstance(v, bool) and abs(v) > 2**53:
        return str(v)
    return v


# access control

class AccessError(LedgerError):
    status = 403


class NotMember(AccessError):
    code = "not_member"


class NotOperator(AccessError):
    code = "not_operator"


class NotOwner(AccessError):
    code = "not_owner"


# parameter validation

class ValidationError(LedgerError):
    status = 422


class InvalidAmount(ValidationError):
    code = "invalid_amount"


class InvalidAddress(ValidationError):
    code = "invalid_address"


class InvalidWeight(ValidationError):
    code = "invalid_weight"


class WeightOverflow(ValidationError):
    code = "weight_overflow"


class AssetMismatch(ValidationError):
    code = "asset_mismatch"


class DuplicateVault(ValidationError):
    code = "duplicate_vault"


class UnknownVault(ValidationError):
    code = "unknown_vault"


class EmptyBasket(ValidationError):
    code = "empty_basket"


class InvalidFeeRate(ValidationError):
    code = "invalid_fee_rate"


class InvalidLedgerKind(ValidationError):
    code = "invalid_ledger_kind"


class InvalidLockPeriod(ValidationError):
    code = "invalid_lock_period"


class MaxSupplyBelowLiabilities(ValidationError):
    code = "max_supply_below_liabilities"


class DustAboveMaxSupply(ValidationError):
    code = "dust_above_max_supply"


# feed time window

class FeedWindowError(LedgerError):
    status = 409


class FeedTimeAncient(FeedWindowError):
    code = "feed_time_ancient"


class FeedRequiresForce(FeedWindowError):
    code = "feed_requires_force"


class FeedFutureNotAllowed(FeedWindowError):
    code = "feed_future_not_allowed"


# external dependencies

class ExternalError(LedgerError):
    status = 502


class DepositShortfall(ExternalError):
    code = "deposit_shortfall"


class WithdrawShortfall(ExternalError):
    code = "withdraw_shortfall"


class InsufficientFunds(LedgerError):
    code = "insufficient_funds"
    status = 422


# economic invariants

class EconomicError(LedgerError):
    status = 422


class ExceedsMaxSupply(EconomicError):
    code = "exceeds_max_supply"


class BelowDustBalance(EconomicError):
    code = "below_dust_balance"


class PoolBankrupt(EconomicError):
    code = "pool_bankrupt"


class BasketShortfall(EconomicError):
    """The books owe more than the basket is worth until a feed posts the loss."""

    code = "basket_shortfall"


class UnbelievableInterestRate(EconomicError):
    code = "unbelievable_interest_rate"


# lifecycle

class LifecycleError(LedgerError):
    status = 409


class NotActivated(LifecycleError):
    code = "not_activated"


class AlreadyActivated(LifecycleError):
    code = "already_activated"


class Paused(LifecycleError):
    code = "paused"


class NotMatured(LifecycleError):
    code = "not_matured"


class WaitingForMaturityFeed(LifecycleError):
    code = "waiting_for_maturity_feed"


class CertificateClosed(LifecycleError):
    code = "certificate_closed"


class ReentrantCall(LifecycleError):
    code = "reentrant_call"


class WrongLedgerKind(LifecycleError):
    code = "wrong_ledger_kind"


# lookups

class NotFound(LedgerError):
    status = 404


class LedgerNotFound(NotFound):
    code = "ledger_not_found"


class CertificateNotFound(NotFound):
    code = "certificate_not_found"
