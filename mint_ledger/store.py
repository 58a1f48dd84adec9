"""Persisted key-value store port, implementations and backup snapshots."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping, Protocol

from .types import UnrecognizedBackupError

logger = logging.getLogger(__name__)

STORE_ENV_VAR = "MINT_LEDGER_STORE"
DEFAULT_STORE_FILE = ".mint_ledger.json"

ACTIVE_UNIT_KEY = "cashu.activeUnit"
ACTIVE_MINT_URL_KEY = "cashu.activeMintUrl"
MINTS_KEY = "cashu.mints"
PROOFS_KEY = "cashu.proofs"
SPENT_PROOFS_KEY = "cashu.spentProofs"
BLIND_SIGNATURES_KEY = "cashu.blindSignatures"

# set once the user has been through first-run onboarding
BACKUP_SENTINEL_KEY = "cashu.welcomeDialogSeen"


class PersistedStore(Protocol):
    """Typed key-value slots surviving process restarts.

    Values are held serialized (JSON text); reads return the last write.
    """

    def load(self, key: str, default: Any = None) -> Any: ...

    def save(self, key: str, value: Any) -> None: ...

    def snapshot(self) -> dict[str, str]: ...

    def write_raw(self, key: str, raw: str) -> None: ...


class MemoryStore:
    """Process-local store, used in tests and for throwaway wallets."""

    def __init__(self, data: Mapping[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(data or {})

    def load(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def save(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)

    def write_raw(self, key: str, raw: str) -> None:
        self._data[key] = raw


class JsonFileStore(MemoryStore):
    """Store backed by one JSON file, rewritten on every write."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        data: dict[str, str] = {}
        if self.path.exists():
            data = json.loads(self.path.read_text())
            logger.debug("Loaded %d slots from %s", len(data), self.path)
        super().__init__(data)

    def _flush(self) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, indent=2))
        os.replace(tmp, self.path)

    def save(self, key: str, value: Any) -> None:
        super().save(key, value)
        self._flush()

    def write_raw(self, key: str, raw: str) -> None:
        super().write_raw(key, raw)
        self._flush()


def get_store_path_from_env() -> Path:
    """Store path from MINT_LEDGER_STORE, defaulting to ./.mint_ledger.json."""
    return Path(os.getenv(STORE_ENV_VAR) or Path.cwd() / DEFAULT_STORE_FILE)


def _as_json_text(raw: Any) -> str:
    if not isinstance(raw, str):
        return json.dumps(raw)
    try:
        json.loads(raw)
    except ValueError:
        # plain string slots, e.g. the active unit or mint url
        return json.dumps(raw)
    return raw


def restore_snapshot(store: PersistedStore, snapshot: Mapping[str, Any]) -> int:
    """Write every slot of a backup snapshot into ``store``.

    JSON text is written verbatim; plain strings and other values are
    JSON-encoded first so every slot loads back.

    Raises:
        UnrecognizedBackupError: If the snapshot lacks the sentinel key.
    """
    if not isinstance(snapshot, Mapping) or not snapshot.get(BACKUP_SENTINEL_KEY):
        raise UnrecognizedBackupError("Unrecognized Backup Format!")
    slots = {key: _as_json_text(raw) for key, raw in snapshot.items()}
    for key, raw in slots.items():
        store.write_raw(key, raw)
    return len(slots)
