from __future__ import annotations

import copy
from typing import Protocol

from basketledger.core.errors import InsufficientFunds, InvalidAddress, InvalidAmount


class UnitToken(Protocol):
    address: str

    def balance_of(self, owner: str) -> int: ...

    def allowance(self, owner: str, spender: str) -> int: ...

    def transfer(self, sender: str, to: str, amount: int) -> None: ...

    def approve(self, owner: str, spender: str, amount: int) -> None: ...

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> None: ...

    def mint(self, to: str, amount: int) -> None: ...

    def burn(self, owner: str, amount: int) -> None: ...


class InMemoryToken:
    """Unit-of-account token kept in process memory.

    Stands in for the exchange bridge's token: balances and allowances only,
    mint/burn open to whoever holds the object.
    """

    def __init__(self, address: str, decimals: int = 6):
        if not address:
            raise InvalidAddress(field="token")
        self.address = address
        self.decimals = decimals
        self._balances: dict[str, int] = {}
        self._allowances: dict[tuple[str, str], int] = {}
        self.total_supply = 0

    def balance_of(self, owner: str) -> int:
        return self._balances.get(owner, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def _move(self, sender: str, to: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(amount=amount)
        if not to:
            raise InvalidAddress(field="to")
        bal = self.balance_of(sender)
        if bal < amount:
            raise InsufficientFunds(owner=sender, required=amount, available=bal)
        self._balances[sender] = bal - amount
        self._balances[to] = self.balance_of(to) + amount

    def transfer(self, sender: str, to: str, amount: int) -> None:
        self._move(sender, to, amount)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(amount=amount)
        self._allowances[(owner, spender)] = amount

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> None:
        allowed = self.allowance(owner, spender)
        if allowed < amount:
            raise InsufficientFunds(owner=owner, spender=spender, required=amount, allowance=allowed)
        self._move(owner, to, amount)
        self._allowances[(owner, spender)] = allowed - amount

    def mint(self, to: str, amount: int) -> None:
        if amount <= 0:
            raise InvalidAmount(amount=amount)
        self._balances[to] = self.balance_of(to) + amount
        self.total_supply += amount

    def burn(self, owner: str, amount: int) -> None:
        bal = self.balance_of(owner)
        if amount <= 0 or bal < amount:
            raise InsufficientFunds(owner=owner, required=amount, available=bal)
        self._balances[owner] = bal - amount
        self.total_supply -= amount

    def snapshot(self):
        return copy.deepcopy((self._balances, self._allowances, self.total_supply))

    def restore(self, state) -> None:
        self._balances, self._allowances, self.total_supply = copy.deepcopy(state)
