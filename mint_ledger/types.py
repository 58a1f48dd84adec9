"""Type definitions for the mint-ledger package following NUT-00/01/02."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, TypedDict


class WalletError(Exception):
    """Base class for wallet errors."""


class NotFoundError(WalletError):
    """No active mint, unknown mint, or missing keys for a keyset."""


class UnsupportedUnitError(WalletError):
    """Requested unit is not offered by the target mint."""


class SyncFailure(WalletError):
    """Network or API failure while fetching info, keysets or keys."""


class UnrecognizedBackupError(WalletError):
    """Backup snapshot is missing the sentinel key."""


class ProofStateError(WalletError):
    """Proof cannot be added because its secret was already spent."""


class MintError(Exception):
    """Base exception for mint errors."""

    pass


class MintProtocolError(MintError):
    """Mint response carried an explicit ``error`` field."""


class KeysetInfoRequired(TypedDict):
    """Required fields for keyset information."""

    id: str
    unit: str
    active: bool


class KeysetInfoOptional(TypedDict, total=False):
    """Optional fields for keyset information."""

    input_fee_ppk: int  # input fee in parts per thousand


class KeysetInfo(KeysetInfoRequired, KeysetInfoOptional):
    """Keyset entry from the /v1/keysets endpoint."""

    pass


class Keys(TypedDict):
    """Public keys of one keyset per NUT-01."""

    id: str
    unit: str
    keys: dict[str, str]  # amount -> compressed secp256k1 pubkey


class KeysetsResponse(TypedDict):
    """Response from GET /v1/keysets."""

    keysets: list[KeysetInfo]


class KeysResponse(TypedDict):
    """Response from GET /v1/keys and GET /v1/keys/{id}."""

    keysets: list[Keys]


class MintInfo(TypedDict, total=False):
    """Mint information response."""

    name: str
    pubkey: str
    version: str
    description: str
    description_long: str
    contact: list[dict[str, str]]
    icon_url: str
    motd: str
    nuts: dict[str, dict[str, Any]]


class Proof(TypedDict):
    """Plain proof as received from a mint or a token."""

    id: str
    amount: int
    secret: str
    C: str


class WalletProof(Proof):
    """Proof held by the wallet, with a reservation flag for pending sends."""

    reserved: bool


class BlindedSignature(TypedDict):
    """Blinded signature response from mint."""

    amount: int
    C_: str  # hex encoded blinded signature
    id: str  # keyset ID


class BlindSignatureAudit(TypedDict):
    """Audit record of a blind signature issued to the wallet."""

    signature: BlindedSignature
    amount: int
    secret: str  # hex
    id: str
    r: str  # hex blinding factor


@dataclass
class MintRecord:
    """Stored state of one known mint."""

    url: str
    keysets: list[KeysetInfo] = field(default_factory=list)
    keys: list[Keys] = field(default_factory=list)
    nickname: str | None = None
    info: MintInfo | None = None

    @property
    def keyset_ids(self) -> list[str]:
        return [k["id"] for k in self.keysets]

    def keys_for(self, keyset_id: str) -> Keys | None:
        """Cached keys for ``keyset_id`` or None."""
        for keys in self.keys:
            if keys["id"] == keyset_id:
                return keys
        return None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "url": self.url,
            "keysets": [dict(k) for k in self.keysets],
            "keys": [dict(k) for k in self.keys],
        }
        if self.nickname is not None:
            data["nickname"] = self.nickname
        if self.info is not None:
            data["info"] = dict(self.info)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MintRecord:
        return cls(
            url=data["url"],
            keysets=list(data.get("keysets") or []),
            keys=list(data.get("keys") or []),
            nickname=data.get("nickname"),
            info=data.get("info"),
        )


@dataclass
class RegistryState:
    """Mutable registry state: known mints and the active pointers."""

    active_unit: str = "sat"
    active_mint_url: str = ""
    mints: list[MintRecord] = field(default_factory=list)

    def find_mint(self, url: str) -> MintRecord | None:
        for mint in self.mints:
            if mint.url == url:
                return mint
        return None
