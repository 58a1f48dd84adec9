"""Serialized activation of the wallet's current mint and unit."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Protocol

from .ledger import ProofLedger
from .mint import MintApi
from .notify import SafeNotifier
from .sync import KeysetSynchronizer
from .types import (
    MintRecord,
    NotFoundError,
    RegistryState,
    UnsupportedUnitError,
)
from .view import MintView

logger = logging.getLogger(__name__)


class ActivationState(Enum):
    INACTIVE = "inactive"
    ACTIVATING = "activating"
    ACTIVE = "active"
    FAILED_ROLLBACK = "failed_rollback"


class WorkerControl(Protocol):
    """Background pollers that must stop before a mint switch."""

    def clear_all_workers(self) -> None: ...


class NoWorkers:
    def clear_all_workers(self) -> None:
        pass


class ActivationController:
    """State machine switching the active mint and unit.

    One activation runs at a time: ``activate_mint`` holds an
    ``asyncio.Lock`` for the whole fetch/sync sequence and restores the
    previous active mint if any step fails.
    """

    def __init__(
        self,
        state: RegistryState,
        ledger: ProofLedger,
        synchronizer: KeysetSynchronizer,
        client_for: Callable[[str], MintApi],
        *,
        workers: WorkerControl | None = None,
        notifier: SafeNotifier | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self.state = state
        self.ledger = ledger
        self.synchronizer = synchronizer
        self._client_for = client_for
        self.workers: WorkerControl = workers or NoWorkers()
        self.notifier = notifier or SafeNotifier()
        self._on_change = on_change
        self._lock = asyncio.Lock()
        self._status = ActivationState.INACTIVE
        self.last_error: BaseException | None = None
        self.refresh_status()

    @property
    def status(self) -> ActivationState:
        return self._status

    def refresh_status(self) -> ActivationState:
        """Re-derive the settled status from the active mint pointer."""
        if not self.activating:
            self._status = (
                ActivationState.ACTIVE
                if self.state.active_mint_url
                else ActivationState.INACTIVE
            )
        return self._status

    @property
    def activating(self) -> bool:
        return self._lock.locked()

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def view(self, mint: MintRecord) -> MintView:
        return MintView(mint, self.ledger.proofs)

    def active_record(self) -> MintRecord:
        mint = self.state.find_mint(self.state.active_mint_url)
        if mint is None:
            raise NotFoundError("No active mint")
        return mint

    # ───────────────────────── Mint activation ─────────────────────────────

    async def activate_mint(
        self, mint: MintRecord, *, verbose: bool = False, force: bool = False
    ) -> bool:
        """Make ``mint`` the active mint, syncing its info, keysets and keys.

        Returns False without side effects if ``mint`` is already active and
        ``force`` is not set, True after a successful activation. Any failure
        restores the previously active mint and is re-raised.
        """
        if mint.url == self.state.active_mint_url and not force:
            # called repeatedly by background workers
            return False

        # workers would re-trigger activation while we switch
        self.workers.clear_all_workers()

        async with self._lock:
            if mint.url == self.state.active_mint_url and not force:
                return False

            record = self.state.find_mint(mint.url)
            if record is None:
                raise NotFoundError(f"Mint not found: {mint.url}")

            previous_url = self.state.active_mint_url
            self._status = ActivationState.ACTIVATING
            try:
                self.state.active_mint_url = record.url
                self._changed()
                logger.info("Activating mint %s", record.url)
                client = self._client_for(record.url)
                await self.synchronizer.fetch_info(record, client)
                await self.synchronizer.sync(record, client)
                self.toggle_active_unit_for_mint(record)
            except BaseException as e:
                self._rollback(previous_url, e)
                raise

            self._status = ActivationState.ACTIVE
            self.last_error = None
            self._changed()
            logger.info("Mint activated: %s", record.url)

        if verbose:
            self.notifier.success("Mint activated.")
        return True

    def _rollback(self, previous_url: str, error: BaseException) -> None:
        self._status = ActivationState.FAILED_ROLLBACK
        self.last_error = error
        self.state.active_mint_url = previous_url
        logger.warning(
            "Mint activation failed, restored active mint %r: %s", previous_url, error
        )
        if isinstance(error, Exception):
            message = "Could not connect to mint."
            if str(error):
                message += f" {error}."
            self.notifier.error(message, "Mint activation failed")
        self._status = (
            ActivationState.ACTIVE if previous_url else ActivationState.INACTIVE
        )
        self._changed()

    # ───────────────────────── Units ─────────────────────────────────

    def activate_unit(self, unit: str) -> str:
        """Set the active unit if the active mint offers it."""
        mint = self.state.find_mint(self.state.active_mint_url)
        if mint is None:
            self.notifier.error("No active mint", "Unit activation failed")
            raise NotFoundError("No active mint")
        if unit not in self.view(mint).units():
            self.notifier.error("Unit not supported by mint", "Unit activation failed")
            raise UnsupportedUnitError(f"Unit {unit} not supported by {mint.url}")
        self.state.active_unit = unit
        self._changed()
        return unit

    def toggle_active_unit_for_mint(self, mint: MintRecord) -> str:
        """Default the active unit to the mint's first unit if it lacks the current one."""
        view = self.view(mint)
        active_unit = self.state.active_unit
        if not active_unit or active_unit not in view.all_balances():
            units = view.units()
            if units:
                self.state.active_unit = units[0]
                self._changed()
            else:
                logger.warning("Mint %s has no active keysets", mint.url)
        return self.state.active_unit

    def toggle_unit(self) -> str:
        """Cycle the active unit through the active mint's units."""
        units = self.view(self.active_record()).units()
        if not units:
            raise UnsupportedUnitError("Active mint offers no units")
        try:
            index = units.index(self.state.active_unit)
        except ValueError:
            index = -1
        self.state.active_unit = units[(index + 1) % len(units)]
        self._changed()
        return self.state.active_unit
