"""Proof ledger: unspent proofs, spent proofs and the blind signature audit trail."""

from __future__ import annotations

from typing import Any, Iterable

from .types import (
    BlindedSignature,
    BlindSignatureAudit,
    Proof,
    ProofStateError,
    WalletProof,
)


def proofs_to_wallet_proofs(proofs: Iterable[Proof]) -> list[WalletProof]:
    """Convert plain proofs to wallet proofs with ``reserved`` cleared."""
    return [
        {
            "id": p["id"],
            "amount": p["amount"],
            "secret": p["secret"],
            "C": p["C"],
            "reserved": False,
        }
        for p in proofs
    ]


def _hex(value: bytes | str) -> str:
    if isinstance(value, bytes):
        return value.hex()
    return value


class ProofLedger:
    """In-memory proof collections keyed by secret.

    Pure data operations, no I/O. Insertion order is preserved for both
    collections; ``spent_proofs`` and ``blind_signatures`` are append-only.
    """

    def __init__(
        self,
        proofs: Iterable[WalletProof] | None = None,
        spent_proofs: Iterable[WalletProof] | None = None,
        blind_signatures: Iterable[BlindSignatureAudit] | None = None,
    ) -> None:
        self._proofs: dict[str, WalletProof] = {}
        self._spent: dict[str, WalletProof] = {}
        self._audit: list[BlindSignatureAudit] = []
        self.load(proofs, spent_proofs, blind_signatures)

    # ───────────────────────── Accessors ─────────────────────────────────

    @property
    def proofs(self) -> list[WalletProof]:
        return list(self._proofs.values())

    @property
    def spent_proofs(self) -> list[WalletProof]:
        return list(self._spent.values())

    @property
    def blind_signatures(self) -> list[BlindSignatureAudit]:
        return list(self._audit)

    @property
    def balance(self) -> int:
        return sum(p["amount"] for p in self._proofs.values())

    def is_spent(self, secret: str) -> bool:
        return secret in self._spent

    def proofs_for_keysets(self, keyset_ids: Iterable[str]) -> list[WalletProof]:
        """Unspent proofs whose keyset id is in ``keyset_ids``."""
        ids = set(keyset_ids)
        return [p for p in self._proofs.values() if p["id"] in ids]

    # ───────────────────────── Mutations ─────────────────────────────────

    def add_proofs(self, new_proofs: Iterable[Proof]) -> list[WalletProof]:
        """Insert proofs keyed by secret.

        A proof whose secret is already held replaces the held one (last
        write wins). Raises ProofStateError, without inserting anything, if
        any secret is already recorded as spent.
        """
        wallet_proofs = proofs_to_wallet_proofs(new_proofs)
        spent = [p["secret"] for p in wallet_proofs if p["secret"] in self._spent]
        if spent:
            raise ProofStateError(
                f"Cannot add {len(spent)} proof(s): secret already spent"
            )
        for proof in wallet_proofs:
            self._proofs[proof["secret"]] = proof
        return wallet_proofs

    def remove_proofs(self, spent: Iterable[Proof]) -> list[WalletProof]:
        """Move proofs to the spent collection.

        Proofs not held are still recorded as spent. Returns the proofs that
        were actually removed from the unspent set.
        """
        removed: list[WalletProof] = []
        for proof in proofs_to_wallet_proofs(spent):
            held = self._proofs.pop(proof["secret"], None)
            if held is not None:
                removed.append(held)
            self._spent.setdefault(proof["secret"], proof)
        return removed

    def append_audit(
        self,
        signature: BlindedSignature,
        amount: int,
        secret: bytes | str,
        r: bytes | str,
    ) -> BlindSignatureAudit:
        audit: BlindSignatureAudit = {
            "signature": signature,
            "amount": amount,
            "secret": _hex(secret),
            "id": signature["id"],
            "r": _hex(r),
        }
        self._audit.append(audit)
        return audit

    # ───────────────────────── Persistence ─────────────────────────────────

    def dump(self) -> dict[str, list[Any]]:
        return {
            "proofs": self.proofs,
            "spent_proofs": self.spent_proofs,
            "blind_signatures": self.blind_signatures,
        }

    def load(
        self,
        proofs: Iterable[WalletProof] | None = None,
        spent_proofs: Iterable[WalletProof] | None = None,
        blind_signatures: Iterable[BlindSignatureAudit] | None = None,
    ) -> None:
        """Replace all collections; a secret present in both is kept as spent."""
        self._proofs.clear()
        self._spent.clear()
        self._audit[:] = list(blind_signatures or [])
        for proof in spent_proofs or []:
            self._spent.setdefault(proof["secret"], proof)
        for proof in proofs or []:
            if proof["secret"] not in self._spent:
                self._proofs[proof["secret"]] = proof
