"""Read-only balance view over one mint."""

from __future__ import annotations

from typing import Iterable

from .types import KeysetInfo, MintRecord, WalletProof


class MintView:
    """Per-mint read model computing units and balances.

    Pure computation over a ``MintRecord`` and a snapshot of the ledger's
    unspent proofs.
    """

    def __init__(self, mint: MintRecord, proofs: Iterable[WalletProof]) -> None:
        self.mint = mint
        self._proofs = list(proofs)

    @property
    def url(self) -> str:
        return self.mint.url

    def proofs(self) -> list[WalletProof]:
        """Proofs on any keyset of this mint, active or not."""
        ids = set(self.mint.keyset_ids)
        return [p for p in self._proofs if p["id"] in ids]

    def balance(self) -> int:
        return sum(p["amount"] for p in self.proofs())

    def active_keysets(self) -> list[KeysetInfo]:
        return [k for k in self.mint.keysets if k["active"]]

    def units(self) -> list[str]:
        """Units of active keysets, de-duplicated in first-seen order."""
        return list(dict.fromkeys(k["unit"] for k in self.active_keysets()))

    def unit_keysets(self, unit: str) -> list[KeysetInfo]:
        return [k for k in self.active_keysets() if k["unit"] == unit]

    def unit_proofs(self, unit: str) -> list[WalletProof]:
        ids = {k["id"] for k in self.unit_keysets(unit)}
        return [p for p in self._proofs if p["id"] in ids]

    def unit_balance(self, unit: str) -> int:
        return sum(p["amount"] for p in self.unit_proofs(unit))

    def all_balances(self) -> dict[str, int]:
        """Balance for every unit in ``units()``."""
        return {unit: self.unit_balance(unit) for unit in self.units()}
