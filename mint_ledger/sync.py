"""Keyset and key synchronization against a mint's API."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Iterator

from .mint import MintApi, assert_mint_error
from .notify import SafeNotifier
from .types import (
    KeysetInfo,
    MintInfo,
    MintProtocolError,
    MintRecord,
    SyncFailure,
)

logger = logging.getLogger(__name__)


class KeysetMergePolicy(Enum):
    """How a fresh keyset listing is merged into the stored one.

    REPLACE overwrites the stored list wholesale, dropping keysets the mint
    no longer reports and any local ``active`` flags. MERGE updates keysets
    by id, appends new ones and keeps missing ones marked inactive.
    """

    REPLACE = "replace"
    MERGE = "merge"


def merge_keysets(
    stored: list[KeysetInfo], fetched: list[KeysetInfo]
) -> list[KeysetInfo]:
    """Upsert ``fetched`` into ``stored`` by id."""
    fresh = {k["id"]: k for k in fetched}
    merged: list[KeysetInfo] = []
    for keyset in stored:
        if keyset["id"] in fresh:
            merged.append(fresh.pop(keyset["id"]))
        else:
            retired: KeysetInfo = dict(keyset)  # type: ignore[assignment]
            retired["active"] = False
            merged.append(retired)
    merged.extend(fresh.values())
    return merged


class KeysetSynchronizer:
    """Brings a mint record's keysets and keys up to date.

    Key records are fetched at most once per keyset id and never replaced:
    a keyset's public keys do not change once minting has begun.
    """

    def __init__(
        self,
        *,
        policy: KeysetMergePolicy = KeysetMergePolicy.REPLACE,
        notifier: SafeNotifier | None = None,
    ) -> None:
        self.policy = policy
        self.notifier = notifier or SafeNotifier()

    @contextmanager
    def _reporting(self, caption: str) -> Iterator[None]:
        """Report failures and surface them as SyncFailure."""
        try:
            yield
        except (MintProtocolError, SyncFailure) as e:
            logger.error("%s: %s", caption, e)
            self.notifier.api_error(e, caption)
            raise
        except Exception as e:
            logger.error("%s: %s", caption, e)
            self.notifier.api_error(e, caption)
            raise SyncFailure(f"{caption}: {e}") from e

    async def fetch_info(self, mint: MintRecord, client: MintApi) -> MintInfo:
        """Fetch and store the mint's info."""
        with self._reporting("Could not get mint info"):
            info = await client.get_info()
            assert_mint_error(info)
        mint.info = info
        return info

    async def sync_keysets(self, mint: MintRecord, client: MintApi) -> list[KeysetInfo]:
        """Fetch the keyset listing and store it per ``policy``.

        An empty listing leaves the stored keysets untouched. Returns the
        fetched keysets.
        """
        with self._reporting("Could not get mint keysets"):
            response = await client.get_keysets()
            assert_mint_error(response)
            keysets = list(response["keysets"])

        if keysets:
            if self.policy is KeysetMergePolicy.MERGE:
                mint.keysets = merge_keysets(mint.keysets, keysets)
            else:
                mint.keysets = keysets
        logger.debug("Synced %d keysets for %s", len(keysets), mint.url)
        return keysets

    async def sync_keys(
        self,
        mint: MintRecord,
        client: MintApi,
        keysets: list[KeysetInfo] | None = None,
    ) -> None:
        """Fetch keys for every keyset in ``keysets`` without cached keys.

        A mint without any keys first gets the full current key set in one
        call. ``keysets`` defaults to the mint's stored keysets.
        """
        if keysets is None:
            keysets = mint.keysets
        with self._reporting("Could not get mint keys"):
            if not mint.keys:
                response = await client.get_keys()
                assert_mint_error(response)
                mint.keys = list(response["keysets"])

            for keyset in keysets:
                if mint.keys_for(keyset["id"]) is not None:
                    continue
                response = await client.get_keys(keyset["id"])
                assert_mint_error(response)
                if not response["keysets"]:
                    raise SyncFailure(f"Mint returned no keys for keyset {keyset['id']}")
                mint.keys.append(response["keysets"][0])
                logger.debug("Fetched keys for keyset %s", keyset["id"])

    async def sync(self, mint: MintRecord, client: MintApi) -> MintRecord:
        """Sync keysets, then the keys they need."""
        keysets = await self.sync_keysets(mint, client)
        await self.sync_keys(mint, client, keysets)
        return mint
