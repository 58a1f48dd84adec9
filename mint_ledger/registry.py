"""Mint registry: known mints, active pointers and the proof ledger."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping

from .activation import ActivationController, WorkerControl
from .ledger import ProofLedger
from .mint import HttpMintClient, MintApi, sanitize_url
from .notify import Notifier, SafeNotifier
from .store import (
    ACTIVE_MINT_URL_KEY,
    ACTIVE_UNIT_KEY,
    BACKUP_SENTINEL_KEY,
    BLIND_SIGNATURES_KEY,
    MINTS_KEY,
    PROOFS_KEY,
    SPENT_PROOFS_KEY,
    MemoryStore,
    PersistedStore,
    restore_snapshot,
)
from .sync import KeysetMergePolicy, KeysetSynchronizer
from .types import (
    BlindedSignature,
    BlindSignatureAudit,
    Keys,
    MintRecord,
    NotFoundError,
    Proof,
    RegistryState,
    UnrecognizedBackupError,
    WalletProof,
)
from .view import MintView

logger = logging.getLogger(__name__)

UNIT_LABELS = {"sat": "SAT", "usd": "USD", "eur": "EUR", "msat": "mSAT"}


class MintRegistry:
    """Multi-mint wallet state with persisted storage.

    Wires the proof ledger, keyset synchronizer and activation controller
    together and writes every change through the persisted store.
    """

    def __init__(
        self,
        store: PersistedStore | None = None,
        *,
        client_factory: Callable[[str], MintApi] = HttpMintClient,
        workers: WorkerControl | None = None,
        notifier: Notifier | None = None,
        policy: KeysetMergePolicy = KeysetMergePolicy.REPLACE,
    ) -> None:
        self.store: PersistedStore = store or MemoryStore()
        self.notifier = SafeNotifier(notifier)
        self.state = RegistryState()
        self.ledger = ProofLedger()
        self._load()

        self._client_factory = client_factory
        self._clients: dict[str, MintApi] = {}
        self.synchronizer = KeysetSynchronizer(policy=policy, notifier=self.notifier)
        self.activation = ActivationController(
            self.state,
            self.ledger,
            self.synchronizer,
            self._get_client,
            workers=workers,
            notifier=self.notifier,
            on_change=self._save_state,
        )

    # ───────────────────────── Persistence ─────────────────────────────────

    def _read(self, store: PersistedStore) -> tuple[RegistryState, ProofLedger]:
        """Parse every slot of ``store`` without touching live state."""
        state = RegistryState(
            active_unit=store.load(ACTIVE_UNIT_KEY, "sat"),
            active_mint_url=store.load(ACTIVE_MINT_URL_KEY, ""),
            mints=[MintRecord.from_dict(m) for m in store.load(MINTS_KEY, [])],
        )
        ledger = ProofLedger(
            store.load(PROOFS_KEY, []),
            store.load(SPENT_PROOFS_KEY, []),
            store.load(BLIND_SIGNATURES_KEY, []),
        )
        return state, ledger

    def _load(self) -> None:
        # state and ledger are shared with the activation controller,
        # so they are updated in place
        state, ledger = self._read(self.store)
        self.state.active_unit = state.active_unit
        self.state.active_mint_url = state.active_mint_url
        self.state.mints = state.mints
        self.ledger.load(ledger.proofs, ledger.spent_proofs, ledger.blind_signatures)

    def _save_state(self) -> None:
        self.store.save(ACTIVE_UNIT_KEY, self.state.active_unit)
        self.store.save(ACTIVE_MINT_URL_KEY, self.state.active_mint_url)
        self.store.save(MINTS_KEY, [m.to_dict() for m in self.state.mints])

    def _save_ledger(self) -> None:
        data = self.ledger.dump()
        self.store.save(PROOFS_KEY, data["proofs"])
        self.store.save(SPENT_PROOFS_KEY, data["spent_proofs"])
        self.store.save(BLIND_SIGNATURES_KEY, data["blind_signatures"])

    def acknowledge_welcome(self) -> None:
        """Mark first-run onboarding as done; backups carry this flag."""
        if not self.store.load(BACKUP_SENTINEL_KEY, False):
            self.store.save(BACKUP_SENTINEL_KEY, True)

    def backup(self) -> dict[str, str]:
        """Snapshot of every persisted slot, serialized."""
        return self.store.snapshot()

    async def restore_from_backup(self, snapshot: Mapping[str, Any]) -> None:
        """Overwrite persisted slots from ``snapshot`` and reload state.

        The snapshot is parsed in a scratch store first; a snapshot that does
        not load leaves the persisted store and live state untouched.
        """
        try:
            staged = MemoryStore(self.store.snapshot())
            restore_snapshot(staged, snapshot)
            try:
                self._read(staged)
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                raise UnrecognizedBackupError(
                    f"Unrecognized Backup Format! {e}"
                ) from e
        except UnrecognizedBackupError as e:
            self.notifier.error(str(e))
            raise

        restore_snapshot(self.store, snapshot)
        self._load()
        self.activation.refresh_status()
        for url in list(self._clients):
            if self.state.find_mint(url) is None:
                await self._drop_client(url)
        self.notifier.success("Backup restored")

    # ───────────────────────── Mint clients ─────────────────────────────────

    def _get_client(self, url: str) -> MintApi:
        """Get or create API client for URL."""
        if url not in self._clients:
            self._clients[url] = self._client_factory(url)
        return self._clients[url]

    async def _drop_client(self, url: str) -> None:
        client = self._clients.pop(url, None)
        aclose = getattr(client, "aclose", None)
        if aclose is not None:
            await aclose()

    async def aclose(self) -> None:
        """Close underlying API clients."""
        for url in list(self._clients):
            await self._drop_client(url)

    async def __aenter__(self) -> MintRegistry:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ───────────────────────── State accessors ─────────────────────────────

    @property
    def active_mint_url(self) -> str:
        return self.state.active_mint_url

    @property
    def active_unit(self) -> str:
        return self.state.active_unit

    @property
    def mints(self) -> list[MintRecord]:
        return list(self.state.mints)

    @property
    def proofs(self) -> list[WalletProof]:
        return self.ledger.proofs

    @property
    def spent_proofs(self) -> list[WalletProof]:
        return self.ledger.spent_proofs

    @property
    def blind_signatures(self) -> list[BlindSignatureAudit]:
        return self.ledger.blind_signatures

    def _require_mint(self, url: str) -> MintRecord:
        mint = self.state.find_mint(url)
        if mint is None:
            raise NotFoundError(f"Mint not found: {url}")
        return mint

    # ───────────────────────── Mint management ─────────────────────────────

    async def add_mint(
        self, url: str, nickname: str | None = None, *, verbose: bool = False
    ) -> MintRecord:
        """Add and activate a mint; a mint that fails to activate is dropped.

        Adding a URL that is already known is a no-op.
        """
        url = sanitize_url(url)
        existing = self.state.find_mint(url)
        if existing is not None:
            if verbose:
                self.notifier.success("Mint already added")
            return existing

        mint = MintRecord(url=url, nickname=nickname)
        self.state.mints.append(mint)
        self._save_state()
        try:
            await self.activate_mint(mint)
        except BaseException:
            # activation failed, forget the mint again
            self.state.mints = [m for m in self.state.mints if m.url != url]
            self._save_state()
            await self._drop_client(url)
            raise

        logger.info("Added mint %s", url)
        if verbose:
            self.notifier.success("Mint added")
        return mint

    async def remove_mint(self, url: str) -> None:
        """Remove a mint and fall back to the first remaining one."""
        mint = self.state.find_mint(url) or self.state.find_mint(sanitize_url(url))
        if mint is None:
            raise NotFoundError(f"Mint not found: {url}")
        url = mint.url
        self.state.mints = [m for m in self.state.mints if m.url != url]
        if url == self.state.active_mint_url:
            self.state.active_mint_url = ""
        self._save_state()
        await self._drop_client(url)
        logger.info("Removed mint %s", url)

        # TODO: fall back to the most recently active mint instead of the first
        if self.state.mints:
            await self.activate_mint(self.state.mints[0])
        self.notifier.success("Mint removed")

    def update_mint(self, old: MintRecord, new: MintRecord) -> None:
        """Replace the stored record of ``old.url`` with ``new``."""
        for index, mint in enumerate(self.state.mints):
            if mint.url == old.url:
                self.state.mints[index] = new
                self._save_state()
                return
        raise NotFoundError(f"Mint not found: {old.url}")

    # ───────────────────────── Activation ─────────────────────────────

    async def activate_mint(
        self, mint: MintRecord, *, verbose: bool = False, force: bool = False
    ) -> bool:
        return await self.activation.activate_mint(mint, verbose=verbose, force=force)

    async def activate_mint_url(
        self,
        url: str,
        *,
        verbose: bool = False,
        force: bool = False,
        unit: str | None = None,
    ) -> None:
        """Activate a known mint by URL, then optionally one of its units."""
        mint = self.state.find_mint(url)
        if mint is None:
            self.notifier.error("Mint not found", "Mint activation failed")
            raise NotFoundError(f"Mint not found: {url}")
        await self.activate_mint(mint, verbose=verbose, force=force)
        if unit:
            self.activate_unit(unit)

    def activate_unit(self, unit: str) -> str:
        return self.activation.activate_unit(unit)

    def toggle_unit(self) -> str:
        return self.activation.toggle_unit()

    def toggle_active_unit_for_mint(self, mint: MintRecord) -> str:
        return self.activation.toggle_active_unit_for_mint(mint)

    def get_keys_for_keyset(self, keyset_id: str) -> Keys:
        """Cached keys of ``keyset_id`` on the active mint."""
        mint = self.state.find_mint(self.state.active_mint_url)
        if mint is None:
            raise NotFoundError("Mint not found")
        keys = mint.keys_for(keyset_id)
        if keys is None:
            raise NotFoundError("Keys not found")
        return keys

    # ───────────────────────── Proofs ─────────────────────────────────

    def add_proofs(self, proofs: Iterable[Proof]) -> list[WalletProof]:
        """Add proofs; every proof must belong to a keyset of a known mint."""
        proofs = list(proofs)
        known = {ks for m in self.state.mints for ks in m.keyset_ids}
        unknown = sorted({p["id"] for p in proofs if p["id"] not in known})
        if unknown:
            raise NotFoundError(f"Proofs reference unknown keysets: {unknown}")
        added = self.ledger.add_proofs(proofs)
        self._save_ledger()
        return added

    def remove_proofs(self, proofs: Iterable[Proof]) -> list[WalletProof]:
        removed = self.ledger.remove_proofs(proofs)
        self._save_ledger()
        return removed

    def append_blind_signature(
        self,
        signature: BlindedSignature,
        amount: int,
        secret: bytes | str,
        r: bytes | str,
    ) -> BlindSignatureAudit:
        audit = self.ledger.append_audit(signature, amount, secret, r)
        self.store.save(BLIND_SIGNATURES_KEY, self.ledger.blind_signatures)
        return audit

    def orphaned_proofs(self) -> list[WalletProof]:
        """Unspent proofs whose keyset no known mint lists."""
        known = {ks for m in self.state.mints for ks in m.keyset_ids}
        return [p for p in self.ledger.proofs if p["id"] not in known]

    # ───────────────────────── Balances ─────────────────────────────────

    def mint_view(self, url: str) -> MintView:
        return MintView(self._require_mint(url), self.ledger.proofs)

    def active_mint(self) -> MintView:
        return MintView(self.activation.active_record(), self.ledger.proofs)

    def active_mint_balance(self) -> int:
        """Balance of the active mint in the active unit."""
        return self.active_mint().unit_balance(self.state.active_unit)

    def active_proofs(self) -> list[WalletProof]:
        """Proofs of the active mint in the active unit, any keyset state."""
        mint = self.state.find_mint(self.state.active_mint_url)
        if mint is None:
            return []
        ids = [k["id"] for k in mint.keysets if k["unit"] == self.state.active_unit]
        return self.ledger.proofs_for_keysets(ids)

    def active_balance(self) -> int:
        """Balance in the active unit across all mints."""
        ids = [
            k["id"]
            for m in self.state.mints
            for k in m.keysets
            if k["unit"] == self.state.active_unit
        ]
        return sum(p["amount"] for p in self.ledger.proofs_for_keysets(ids))

    def active_unit_label(self) -> str:
        return UNIT_LABELS.get(self.state.active_unit, self.state.active_unit)
