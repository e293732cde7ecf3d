"""Pump.fun migration watcher that buys graduated tokens and seeds Meteora DAMM v2 liquidity."""

__version__ = "0.1.0"
