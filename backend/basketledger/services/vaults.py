from __future__ import annotations

import copy
from typing import Protocol

from basketledger.core.errors import InsufficientFunds, InvalidAddress, InvalidAmount, UnknownVault
from basketledger.services.token import InMemoryToken


class Vault(Protocol):
    address: str

    def asset(self) -> str: ...

    def balance_of(self, owner: str) -> int: ...

    def convert_to_assets(self, shares: int) -> int: ...

    def deposit(self, assets: int, receiver: str) -> int: ...

    def withdraw(self, assets: int, receiver: str, owner: str) -> int: ...


def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)


class InMemoryVault:
    """Tokenized yield vault over an :class:`InMemoryToken`.

    Shares are priced as ``total_assets / total_supply``; deposits round the
    minted shares down and withdrawals round the burned shares up, so the
    vault never pays out more than it holds. Deposits pull the assets from
    the receiver, who must have approved the vault beforehand.
    """

    def __init__(self, address: str, token: InMemoryToken):
        if not address:
            raise InvalidAddress(field="vault")
        self.address = address
        self.token = token
        self.total_supply = 0
        self._shares: dict[str, int] = {}

    def asset(self) -> str:
        return self.token.address

    def total_assets(self) -> int:
        return self.token.balance_of(self.address)

    def balance_of(self, owner: str) -> int:
        return self._shares.get(owner, 0)

    def convert_to_shares(self, assets: int) -> int:
        if self.total_supply == 0 or self.total_assets() == 0:
            return assets
        return assets * self.total_supply // self.total_assets()

    def convert_to_assets(self, shares: int) -> int:
        if self.total_supply == 0:
            return shares
        return shares * self.total_assets() // self.total_supply

    def deposit(self, assets: int, receiver: str) -> int:
        if assets <= 0:
            raise InvalidAmount(amount=assets)
        shares = self.convert_to_shares(assets)
        self.token.transfer_from(self.address, receiver, self.address, assets)
        self._mint(receiver, shares)
        return shares

    def withdraw(self, assets: int, receiver: str, owner: str) -> int:
        if assets <= 0:
            raise InvalidAmount(amount=assets)
        if self.total_supply == 0:
            raise InsufficientFunds(owner=owner, required=assets, available=0)
        shares = _ceil_div(assets * self.total_supply, self.total_assets())
        held = self.balance_of(owner)
        if held < shares:
            raise InsufficientFunds(owner=owner, required=shares, available=held)
        self._shares[owner] = held - shares
        self.total_supply -= shares
        self.token.transfer(self.address, receiver, assets)
        return shares

    def _mint(self, to: str, shares: int) -> None:
        self._shares[to] = self.balance_of(to) + shares
        self.total_supply += shares

    def accrue(self, assets: int) -> None:
        """Yield arriving in the vault."""
        self.token.mint(self.address, assets)

    def lose(self, assets: int) -> None:
        """Value leaving the vault (bad debt, exploit, ...)."""
        self.token.burn(self.address, assets)

    def snapshot(self):
        return copy.deepcopy((self._shares, self.total_supply))

    def restore(self, state) -> None:
        self._shares, self.total_supply = copy.deepcopy(state)


class VaultRegistry:
    def __init__(self, vaults=()):
        self._vaults: dict[str, Vault] = {}
        for v in vaults:
            self.register(v)

    def register(self, vault: Vault) -> Vault:
        self._vaults[vault.address] = vault
        return vault

    def get(self, address: str) -> Vault:
        v = self._vaults.get(address)
        if v is None:
            raise UnknownVault(vault=address)
        return v

    def __contains__(self, address: str) -> bool:
        return address in self._vaults

    def __iter__(self):
        return iter(self._vaults.values())
