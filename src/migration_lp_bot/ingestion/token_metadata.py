"""Metaplex token metadata lookups used to label notifications."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from cachetools import TTLCache
from construct import Bytes, ConstructError, Int8ul, Int32ul, PascalString, Struct
from solders.pubkey import Pubkey

from ..errors import RpcError
from ..execution.solana_client import SolanaRpc
from ..monitoring.logger import get_logger
from ..utils.constants import METADATA_PROGRAM_ID

METADATA_LAYOUT = Struct(
    "key" / Int8ul,
    "update_authority" / Bytes(32),
    "mint" / Bytes(32),
    "name" / PascalString(Int32ul, "utf8"),
    "symbol" / PascalString(Int32ul, "utf8"),
    "uri" / PascalString(Int32ul, "utf8"),
)


@dataclass(slots=True, frozen=True)
class TokenMetadata:
    mint: str
    name: str
    symbol: str
    uri: str = ""


def metadata_address(mint: str) -> Pubkey:
    program = Pubkey.from_string(METADATA_PROGRAM_ID)
    address, _ = Pubkey.find_program_address(
        [b"metadata", bytes(program), bytes(Pubkey.from_string(mint))],
        program,
    )
    return address


def parse_metadata(mint: str, data: bytes) -> Optional[TokenMetadata]:
    try:
        parsed = METADATA_LAYOUT.parse(data)
    except (ConstructError, UnicodeDecodeError):
        return None
    return TokenMetadata(
        mint=mint,
        name=parsed.name.rstrip("\x00").strip(),
        symbol=parsed.symbol.rstrip("\x00").strip(),
        uri=parsed.uri.rstrip("\x00").strip(),
    )


class TokenMetadataResolver:
    """Resolve token name and symbol, caching results for an hour."""

    def __init__(self, rpc: SolanaRpc, cache_ttl: int = 3600) -> None:
        self._rpc = rpc
        self._cache: TTLCache[str, Optional[TokenMetadata]] = TTLCache(maxsize=1024, ttl=cache_ttl)
        self._logger = get_logger(__name__)

    async def resolve(self, mint: str) -> Optional[TokenMetadata]:
        if mint in self._cache:
            return self._cache[mint]
        try:
            data = await self._rpc.get_account_data(str(metadata_address(mint)))
        except RpcError as exc:
            self._logger.debug("Metadata lookup for %s failed: %s", mint, exc)
            return None
        metadata = parse_metadata(mint, data) if data else None
        self._cache[mint] = metadata
        return metadata


__all__ = ["METADATA_LAYOUT", "TokenMetadata", "TokenMetadataResolver", "metadata_address", "parse_metadata"]
