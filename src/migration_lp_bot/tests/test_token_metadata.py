from __future__ import annotations

import asyncio
from typing import List, Optional

from solders.pubkey import Pubkey

from migration_lp_bot.errors import RpcError
from migration_lp_bot.ingestion.token_metadata import METADATA_LAYOUT, TokenMetadataResolver, metadata_address, parse_metadata


def _metadata_bytes(name: str, symbol: str) -> bytes:
    return METADATA_LAYOUT.build(
        dict(
            key=4,
            update_authority=bytes(32),
            mint=bytes(32),
            name=name.ljust(32, "\x00"),
            symbol=symbol.ljust(10, "\x00"),
            uri="https://example.com/meta.json",
        )
    )


class StubRpc:
    def __init__(self, data: Optional[bytes], error: Optional[Exception] = None) -> None:
        self.data = data
        self.error = error
        self.requests: List[str] = []

    async def get_account_data(self, address: str) -> Optional[bytes]:
        self.requests.append(address)
        if self.error is not None:
            raise self.error
        return self.data


def test_parse_strips_padding() -> None:
    metadata = parse_metadata("Mint", _metadata_bytes("Token One", "ONE"))

    assert metadata is not None
    assert metadata.name == "Token One"
    assert metadata.symbol == "ONE"


def test_resolver_caches_lookups() -> None:
    mint = str(Pubkey.new_unique())
    rpc = StubRpc(_metadata_bytes("Cached", "CCH"))
    resolver = TokenMetadataResolver(rpc)  # type: ignore[arg-type]

    async def scenario() -> None:
        first = await resolver.resolve(mint)
        second = await resolver.resolve(mint)
        assert first == second
        assert first is not None and first.symbol == "CCH"

    asyncio.run(scenario())

    assert rpc.requests == [str(metadata_address(mint))]


def test_resolver_returns_none_on_rpc_failure() -> None:
    resolver = TokenMetadataResolver(StubRpc(None, RpcError("get_account_info", "boom")))  # type: ignore[arg-type]

    assert asyncio.run(resolver.resolve(str(Pubkey.new_unique()))) is None
