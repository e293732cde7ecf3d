"""Utilities for invoking the bundled Node.js helpers.

Position management for DAMM v2 relies on the official Meteora ``cp-amm``
SDK, which is maintained in TypeScript. The helpers in ``node_bridge/`` read
a JSON payload on stdin and print serialized instructions on stdout. Run
``npm install`` inside that directory before enabling liquidity provisioning.
"""

from __future__ import annotations

import asyncio
import base64
import json
import subprocess
from pathlib import Path
from typing import Any, Iterable

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from ..errors import BotError


class NodeBridgeError(BotError):
    """Raised when a Node.js helper script fails."""


class NodeBridge:
    """Thin wrapper around the Node.js helper scripts."""

    def __init__(self, base_dir: Path | str | None = None, *, timeout: float = 60.0) -> None:
        if base_dir is not None:
            candidate = Path(base_dir).expanduser().resolve()
        else:
            candidate = self._discover_default_base_dir()
        self._base_dir = candidate
        self._timeout = timeout

    def _discover_default_base_dir(self) -> Path:
        current = Path(__file__).resolve()
        for parent in current.parents:
            helper_dir = parent / "node_bridge"
            if (helper_dir / "package.json").exists():
                return helper_dir
        raise NodeBridgeError(
            "Unable to locate node_bridge helpers relative to the package; "
            "ensure the repository root is intact or provide base_dir explicitly."
        )

    def _ensure_environment(self) -> None:
        if not (self._base_dir / "package.json").exists():
            raise NodeBridgeError(f"Node helper package.json not found in {self._base_dir}")
        if not (self._base_dir / "node_modules").exists():
            raise NodeBridgeError(
                "Node dependencies missing. Run 'npm install' inside the node_bridge directory."
            )

    def run(self, script_name: str, payload: dict[str, Any]) -> dict[str, Any]:
        self._ensure_environment()
        script_path = self._base_dir / script_name
        if not script_path.exists():
            raise NodeBridgeError(f"Node script {script_name} not found in {self._base_dir}")
        try:
            result = subprocess.run(
                ["node", script_path.name],
                input=json.dumps(payload),
                text=True,
                capture_output=True,
                cwd=self._base_dir,
                check=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise NodeBridgeError(f"Node script {script_name} timed out after {self._timeout:.0f}s") from exc
        except subprocess.CalledProcessError as exc:
            stderr = exc.stderr.strip()
            try:
                message = json.loads(stderr).get("error", stderr)
            except json.JSONDecodeError:
                message = stderr or str(exc)
            raise NodeBridgeError(message) from exc
        if not result.stdout:
            return {}
        return json.loads(result.stdout)

    async def run_async(self, script_name: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await asyncio.to_thread(self.run, script_name, payload)


def convert_instructions(entries: Iterable[dict]) -> list[Instruction]:
    """Turn the helper's ``{programId, accounts, data}`` dicts into solders instructions."""

    instructions: list[Instruction] = []
    for entry in entries:
        accounts = [
            AccountMeta(
                pubkey=Pubkey.from_string(meta["pubkey"]),
                is_signer=bool(meta["isSigner"]),
                is_writable=bool(meta["isWritable"]),
            )
            for meta in entry.get("accounts", [])
        ]
        instructions.append(
            Instruction(
                program_id=Pubkey.from_string(entry["programId"]),
                data=base64.b64decode(entry.get("data", "")),
                accounts=accounts,
            )
        )
    return instructions


__all__ = ["NodeBridge", "NodeBridgeError", "convert_instructions"]
