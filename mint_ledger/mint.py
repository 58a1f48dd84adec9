"""Cashu Mint API client port and httpx adapter."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping, Protocol, cast

import httpx
from dotenv import dotenv_values

from .types import (
    KeysetsResponse,
    KeysResponse,
    MintError,
    MintInfo,
    MintProtocolError,
)

logger = logging.getLogger(__name__)

MINTS_ENV_VAR = "CASHU_MINTS"

_SCHEME_RE = re.compile(r"^[a-z]+://")


# ──────────────────────────────────────────────────────────────────────────────
# Mint API port
# ──────────────────────────────────────────────────────────────────────────────


class MintApi(Protocol):
    """Operations the registry consumes from a mint."""

    async def get_info(self) -> MintInfo: ...

    async def get_keysets(self) -> KeysetsResponse: ...

    async def get_keys(self, keyset_id: str | None = None) -> KeysResponse: ...


def assert_mint_error(response: Mapping[str, Any]) -> None:
    """Raise MintProtocolError if ``response`` carries an ``error`` field."""
    error = response.get("error")
    if error is not None:
        raise MintProtocolError(f"Mint error: {error}")


def sanitize_url(url: str) -> str:
    """Trim whitespace and trailing slashes, default to https://.

    Hosts are not validated; an unreachable mint fails on connect.
    """
    cleaned = url.strip().rstrip("/")
    if not _SCHEME_RE.match(cleaned):
        cleaned = "https://" + cleaned
    return cleaned


# ──────────────────────────────────────────────────────────────────────────────
# httpx client
# ──────────────────────────────────────────────────────────────────────────────


class InvalidKeysetError(MintError):
    """Raised when keyset structure is invalid per NUT-01."""


class HttpMintClient:
    """Read-only mint client over httpx."""

    def __init__(self, url: str, *, timeout: float = 30.0) -> None:
        # Normalize URL by removing trailing slashes
        self.url = url.rstrip("/")
        self.client = httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make HTTP request to mint."""
        logger.debug("%s request to %s%s", method, self.url, path)
        response = await self.client.request(
            method,
            f"{self.url}{path}",
            params=params,
        )

        if response.status_code >= 400:
            raise MintError(f"Mint returned {response.status_code}: {response.text}")

        data = response.json()
        assert_mint_error(data)
        return data

    def _validate_keys_response(self, response: dict[str, Any]) -> KeysResponse:
        """Validate and cast response to NUT-01 compliant KeysResponse.

        Raises:
            InvalidKeysetError: If response doesn't match NUT-01
        """
        if "keysets" not in response:
            raise InvalidKeysetError("Response missing 'keysets' field")

        keysets = response["keysets"]
        if not isinstance(keysets, list):
            raise InvalidKeysetError("'keysets' must be a list")

        for i, keyset in enumerate(keysets):
            if not _is_valid_keys(keyset):
                raise InvalidKeysetError(f"Invalid keyset at index {i}")

        return cast(KeysResponse, response)

    # ───────────────────────── Info & Keys ─────────────────────────────────

    async def get_info(self) -> MintInfo:
        """Get mint information."""
        return cast(MintInfo, await self._request("GET", "/v1/info"))

    async def get_keysets(self) -> KeysetsResponse:
        """Get all keysets of the mint, active and inactive."""
        response = await self._request("GET", "/v1/keysets")
        if not isinstance(response.get("keysets"), list):
            raise InvalidKeysetError("Response missing 'keysets' list")
        return cast(KeysetsResponse, response)

    async def get_keys(self, keyset_id: str | None = None) -> KeysResponse:
        """Get public keys of all active keysets, or of ``keyset_id``."""
        path = "/v1/keys" if keyset_id is None else f"/v1/keys/{keyset_id}"
        return self._validate_keys_response(await self._request("GET", path))


def _is_valid_keys(keyset: Any) -> bool:
    if not isinstance(keyset, dict):
        return False
    if not all(field in keyset for field in ("id", "unit", "keys")):
        return False
    keys = keyset["keys"]
    if not isinstance(keys, dict):
        return False
    return all(_is_valid_compressed_pubkey(pubkey) for pubkey in keys.values())


def _is_valid_compressed_pubkey(pubkey: Any) -> bool:
    """Compressed secp256k1 pubkeys are 33 bytes hex, prefixed 02 or 03."""
    if not isinstance(pubkey, str) or len(pubkey) != 66:
        return False
    if not pubkey.startswith(("02", "03")):
        return False
    try:
        bytes.fromhex(pubkey)
    except ValueError:
        return False
    return True


# ──────────────────────────────────────────────────────────────────────────────
# Mint Environment
# ──────────────────────────────────────────────────────────────────────────────


def _split_mints(value: str) -> list[str]:
    mints = [sanitize_url(mint) for mint in value.split(",") if mint.strip()]
    # remove duplicates while preserving order
    return list(dict.fromkeys(mints))


def get_mints_from_env() -> list[str]:
    """Get mint URLs from environment variable or .env file.

    Expected format: comma-separated URLs
    Example: CASHU_MINTS="https://mint1.com,https://mint2.com"

    Priority order:
    1. Environment variable CASHU_MINTS
    2. .env file in current working directory

    Returns:
        List of sanitized mint URLs, empty list if not set
    """
    env_mints = os.getenv(MINTS_ENV_VAR)
    if env_mints:
        return _split_mints(env_mints)

    env_file = Path.cwd() / ".env"
    if env_file.exists():
        value = dotenv_values(env_file).get(MINTS_ENV_VAR)
        if value:
            return _split_mints(value)

    return []
