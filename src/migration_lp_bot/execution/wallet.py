"""Wallet helpers for the operator keypair."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ..config.settings import WalletConfig, get_app_config


@dataclass(slots=True)
class Wallet:
    """Wrapper around a Solana keypair; shared read-only by every signer."""

    keypair: Keypair

    @property
    def public_key(self) -> Pubkey:
        return self.keypair.pubkey()

    @property
    def address(self) -> str:
        return str(self.keypair.pubkey())


def _keypair_from_bytes(secret: bytes) -> Keypair:
    if len(secret) == 64:
        return Keypair.from_bytes(secret)
    if len(secret) == 32:
        return Keypair.from_seed(secret)
    raise ValueError(f"Secret key must be 32 or 64 bytes, got {len(secret)}")


def parse_secret_key(raw: str) -> Keypair:
    """Accept a JSON byte array, a base58 string or a hex string."""

    value = raw.strip()
    if value.startswith("["):
        data = json.loads(value)
        return _keypair_from_bytes(bytes(data))
    try:
        return _keypair_from_bytes(base58.b58decode(value))
    except ValueError:
        pass
    try:
        return _keypair_from_bytes(bytes.fromhex(value.removeprefix("0x")))
    except ValueError as exc:
        raise ValueError("Unrecognised private key format; expected JSON array, base58 or hex") from exc


def load_wallet(config: Optional[WalletConfig] = None) -> Wallet:
    cfg = config or get_app_config().wallet
    if cfg.private_key:
        return Wallet(keypair=parse_secret_key(cfg.private_key))
    if cfg.keypair_path:
        path = Path(cfg.keypair_path).expanduser()
        return Wallet(keypair=parse_secret_key(path.read_text(encoding="utf-8")))
    raise ValueError("Wallet configuration error: set PRIVATE_KEY or wallet.keypair_path")


__all__ = ["Wallet", "load_wallet", "parse_secret_key"]
