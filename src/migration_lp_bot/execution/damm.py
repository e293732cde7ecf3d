"""Meteora DAMM v2 position builders backed by the Node.js helpers."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from solders.instruction import Instruction
from solders.keypair import Keypair

from ..config.settings import RPCConfig, get_app_config
from ..errors import LiquidityError
from ..monitoring.logger import get_logger
from ..pools.amm_math import DepositPlan
from .node_bridge import NodeBridge, NodeBridgeError, convert_instructions

CREATE_POSITION_SCRIPT = "build_damm_position.mjs"
CLOSE_POSITION_SCRIPT = "build_damm_close.mjs"
LIST_POSITIONS_SCRIPT = "list_damm_positions.mjs"


class DammPositionBuilder:
    """Builds create/close position instructions for DAMM v2 pools."""

    def __init__(
        self,
        rpc_config: Optional[RPCConfig] = None,
        node_bridge: Optional[NodeBridge] = None,
    ) -> None:
        self._rpc_config = rpc_config or get_app_config().rpc
        self._node_bridge = node_bridge
        self._logger = get_logger(__name__)

    @property
    def bridge(self) -> NodeBridge:
        if self._node_bridge is None:
            self._node_bridge = NodeBridge()
        return self._node_bridge

    async def _run(self, script: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        payload = {"rpcUrl": str(self._rpc_config.http_url), **payload}
        try:
            return await self.bridge.run_async(script, payload)
        except NodeBridgeError as exc:
            raise LiquidityError(f"{script} failed: {exc}") from exc

    async def build_create_position(
        self,
        *,
        owner: str,
        pool_id: str,
        plan: DepositPlan,
    ) -> Tuple[List[Instruction], Keypair]:
        """Return the instructions plus the fresh position NFT keypair that must co-sign."""

        position_keypair = Keypair()
        self._logger.debug("Invoking DAMM position helper for pool %s", pool_id)
        response = await self._run(
            CREATE_POSITION_SCRIPT,
            {
                "poolAddress": pool_id,
                "owner": owner,
                "positionNft": str(position_keypair.pubkey()),
                "liquidityDelta": str(plan.liquidity_delta),
                "maxAmountTokenA": str(plan.threshold_a),
                "maxAmountTokenB": str(plan.threshold_b),
                "tokenAAmountThreshold": str(plan.threshold_a),
                "tokenBAmountThreshold": str(plan.threshold_b),
            },
        )
        instructions = convert_instructions(response.get("instructions", []))
        if not instructions:
            raise LiquidityError("DAMM position helper returned no instructions")
        return instructions, position_keypair

    async def list_positions(self, owner: str) -> List[Dict[str, Any]]:
        response = await self._run(LIST_POSITIONS_SCRIPT, {"owner": owner})
        return list(response.get("positions", []))

    async def build_close_position(self, *, owner: str, position: Dict[str, Any]) -> List[Instruction]:
        """Remove all liquidity from ``position`` and close it."""

        response = await self._run(
            CLOSE_POSITION_SCRIPT,
            {
                "owner": owner,
                "poolAddress": position["pool"],
                "position": position["position"],
                "positionNftAccount": position["positionNftAccount"],
            },
        )
        instructions = convert_instructions(response.get("instructions", []))
        if not instructions:
            raise LiquidityError(f"Close helper returned no instructions for {position['position']}")
        return instructions


__all__ = ["DammPositionBuilder"]
