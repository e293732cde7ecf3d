"""Pool matching for pending migration candidates."""

from .reconciler import ReconciliationLoop, ScanState

__all__ = ["ReconciliationLoop", "ScanState"]
