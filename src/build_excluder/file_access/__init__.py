"""
Moving assets between the project tree and the holding area.
"""

from .relocator import AssetRelocator, RelocationRecord, RelocationOutcome
from .orphan_recovery import OrphanRecovery, RecoveryReport

__all__ = [
    "AssetRelocator",
    "RelocationRecord",
    "RelocationOutcome",
    "OrphanRecovery",
    "RecoveryReport",
]
