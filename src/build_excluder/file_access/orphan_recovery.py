"""
Recovery of assets stranded in the holding area by an interrupted build.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import List

from .relocator import AssetRelocator, RelocationOutcome

logger = logging.getLogger(__name__)


@dataclass
class RecoveryReport:
    """What a sweep of the holding area did."""

    restored: List[str] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def found_orphans(self) -> bool:
        return bool(self.restored or self.conflicts or self.failed)


class OrphanRecovery:
    """Put back whatever is left in holding when its original place is free.

    This does not consult the session tracker; it works purely from what is
    on disk, so it also repairs state left behind by a killed process.
    """

    def __init__(self, relocator: AssetRelocator):
        self.relocator = relocator

    def sweep_and_restore(self) -> RecoveryReport:
        """
        Scan the holding directory and restore orphaned entries.

        A held entry whose original location is free is moved back together
        with its sidecar. A held directory without a held sidecar is a mirror
        of an intermediate directory (``StoreSpecific`` for
        ``Assets/StoreSpecific/GooglePlay``); when its live counterpart exists
        the sweep descends into it. Anything else whose original location is
        occupied stays in holding, sidecar included, and is reported as a
        conflict.

        Returns:
            RecoveryReport listing restored, conflicting and failed paths
        """
        report = RecoveryReport()
        holding_root = self.relocator.holding_root

        if not holding_root.is_dir():
            return report

        if not any(holding_root.iterdir()):
            self.relocator.prune_empty_holding_dirs(holding_root)
            return report

        logger.warning(
            f"Found orphaned assets in {holding_root.name}, attempting to restore..."
        )
        self._sweep_directory(holding_root, PurePosixPath(), report)
        self.relocator.prune_empty_holding_dirs(holding_root)

        if report.conflicts:
            logger.warning(
                f"{len(report.conflicts)} orphaned assets left in {holding_root} "
                f"because their original location is occupied"
            )
        return report

    def _sweep_directory(
        self, directory: Path, prefix: PurePosixPath, report: RecoveryReport
    ):
        try:
            children = sorted(directory.iterdir())
        except OSError as e:
            logger.error(f"Cannot scan {directory}: {e}")
            report.failed.append(str(directory))
            return

        names = {child.name for child in children}
        suffix = self.relocator.sidecar_suffix

        for child in children:
            # Sidecars travel with their entry
            if self.relocator.is_sidecar(child) and child.name[: -len(suffix)] in names:
                continue

            relative = prefix / child.name
            logical_path = self.relocator.to_logical(relative)
            original = self.relocator.tree_path(relative)
            held_sidecar = self.relocator.sidecar_of(child)

            # Only a bare mirror directory (no held sidecar) is merged into its live parent
            if (
                child.is_dir()
                and not child.is_symlink()
                and original.is_dir()
                and held_sidecar.name not in names
            ):
                self._sweep_directory(child, relative, report)
                self.relocator.prune_empty_holding_dirs(child)
                continue

            record = self.relocator.restore_entry(logical_path)
            if record.outcome is RelocationOutcome.MOVED:
                logger.info(f"Restored orphaned asset: {logical_path}")
                report.restored.append(logical_path)
                outcome_list = report.conflicts
            elif record.outcome is RelocationOutcome.CONFLICT:
                logger.warning(
                    f"Orphan left in holding, {logical_path} already exists in the tree"
                )
                report.conflicts.append(logical_path)
                outcome_list = report.conflicts
            else:
                report.failed.append(logical_path)
                outcome_list = report.failed

            if held_sidecar.name in names and held_sidecar.exists():
                logger.warning(f"Sidecar left in holding: {held_sidecar}")
                outcome_list.append(logical_path + suffix)
