"""
Relocation service moving assets between the project tree and the holding area.
"""

import shutil
import logging
from pathlib import Path, PurePosixPath
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum

logger = logging.getLogger(__name__)


class RelocationOutcome(Enum):
    """Result of a single relocation attempt."""

    MOVED = "moved"
    CONFLICT = "conflict"
    MISSING = "missing"
    INVALID = "invalid"
    FAILED = "failed"


@dataclass
class RelocationRecord:
    """Represents one exclude or restore attempt."""

    operation_type: str  # 'exclude' or 'restore'
    logical_path: str
    source_path: str
    target_path: str
    timestamp: str
    outcome: RelocationOutcome
    error: Optional[str] = None
    sidecar_moved: bool = False

    @property
    def success(self) -> bool:
        return self.outcome is RelocationOutcome.MOVED


def _occupied(path: Path) -> bool:
    # lexists semantics: a dangling symlink still occupies the name
    return path.exists() or path.is_symlink()


class AssetRelocator:
    """Move assets (and their sidecar files) out of the tree and back.

    The holding directory sits next to the tree root and mirrors the asset's
    subpath: ``Assets/A/B`` is held at ``<holding>/A/B``. Nothing is ever
    overwritten; an occupied destination is reported as a conflict.
    """

    def __init__(
        self,
        project_root: Path,
        tree_dir: str = "Assets",
        holding_dir: str = "ExcludedAssets",
        sidecar_suffix: str = ".meta",
    ):
        """Initialize the relocator.

        Args:
            project_root: Directory holding both the tree root and holding area
            tree_dir: Name of the asset tree root; logical paths start with it
            holding_dir: Name of the holding directory, sibling of ``tree_dir``
            sidecar_suffix: Suffix of the metadata file moved with each entry
        """
        self.project_root = Path(project_root)
        self.tree_dir = tree_dir
        self.tree_root = self.project_root / tree_dir
        self.holding_root = self.project_root / holding_dir
        self.sidecar_suffix = sidecar_suffix
        self.operations_log: List[RelocationRecord] = []

        logger.debug(
            f"AssetRelocator initialized: tree={self.tree_root}, holding={self.holding_root}"
        )

    def to_relative(self, logical_path: str) -> Optional[PurePosixPath]:
        """Convert ``Assets/A/B`` into ``A/B``; None if outside the tree."""
        normalized = logical_path.replace("\\", "/").strip().strip("/")
        parts = [part for part in normalized.split("/") if part not in ("", ".")]

        if len(parts) < 2 or parts[0] != self.tree_dir:
            return None
        if ".." in parts:
            return None
        return PurePosixPath(*parts[1:])

    def to_logical(self, relative: PurePosixPath) -> str:
        return f"{self.tree_dir}/{relative.as_posix()}"

    def tree_path(self, relative: PurePosixPath) -> Path:
        return self.tree_root.joinpath(*relative.parts)

    def holding_path(self, relative: PurePosixPath) -> Path:
        return self.holding_root.joinpath(*relative.parts)

    def sidecar_of(self, path: Path) -> Path:
        return path.with_name(path.name + self.sidecar_suffix)

    def is_sidecar(self, path: Path) -> bool:
        return path.name.endswith(self.sidecar_suffix) and path.name != self.sidecar_suffix

    def exclude(self, logical_path: str) -> bool:
        """Move an asset from the tree into holding.

        Args:
            logical_path: Asset path rooted at the tree, e.g. ``Assets/DebugTools``

        Returns:
            True if the asset was moved
        """
        return self.exclude_entry(logical_path).success

    def restore(self, logical_path: str) -> bool:
        """Move an asset from holding back to its place in the tree.

        Args:
            logical_path: Asset path rooted at the tree

        Returns:
            True if the asset was moved back
        """
        return self.restore_entry(logical_path).success

    def exclude_entry(self, logical_path: str) -> RelocationRecord:
        relative = self.to_relative(logical_path)
        if relative is None:
            return self._reject("exclude", logical_path)

        return self._relocate(
            "exclude",
            logical_path,
            self.tree_path(relative),
            self.holding_path(relative),
        )

    def restore_entry(self, logical_path: str) -> RelocationRecord:
        relative = self.to_relative(logical_path)
        if relative is None:
            return self._reject("restore", logical_path)

        record = self._relocate(
            "restore",
            logical_path,
            self.holding_path(relative),
            self.tree_path(relative),
        )
        if record.success:
            self.prune_empty_holding_dirs(self.holding_path(relative).parent)
        return record

    def _reject(self, operation: str, logical_path: str) -> RelocationRecord:
        logger.warning(
            f"Not an asset path under {self.tree_dir}/, skipping {operation}: {logical_path!r}"
        )
        record = RelocationRecord(
            operation_type=operation,
            logical_path=logical_path,
            source_path="",
            target_path="",
            timestamp=datetime.now().isoformat(),
            outcome=RelocationOutcome.INVALID,
            error="Path is outside the asset tree",
        )
        self._log_operation(record)
        return record

    def _relocate(
        self, operation: str, logical_path: str, source: Path, target: Path
    ) -> RelocationRecord:
        record = RelocationRecord(
            operation_type=operation,
            logical_path=logical_path,
            source_path=str(source),
            target_path=str(target),
            timestamp=datetime.now().isoformat(),
            outcome=RelocationOutcome.FAILED,
        )

        if _occupied(target):
            logger.warning(f"Destination already exists, not overwriting: {target}")
            record.outcome = RelocationOutcome.CONFLICT
            record.error = "Destination already exists"
        elif not _occupied(source):
            logger.warning(f"Asset not found for {operation}: {logical_path} ({source})")
            record.outcome = RelocationOutcome.MISSING
            record.error = "Source not found"
        else:
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(source), str(target))
            except OSError as e:
                record.error = str(e)
                logger.error(f"Failed to {operation} {logical_path}: {e}")
            else:
                record.outcome = RelocationOutcome.MOVED
                record.sidecar_moved = self._move_sidecar(source, target)
                logger.info(f"{operation.capitalize()}d: {logical_path}")

        self._log_operation(record)
        return record

    def _move_sidecar(self, source: Path, target: Path) -> bool:
        """Move ``<source><suffix>`` next to ``target`` if present."""
        sidecar = self.sidecar_of(source)
        if not _occupied(sidecar):
            return False

        sidecar_target = self.sidecar_of(target)
        if _occupied(sidecar_target):
            logger.warning(f"Sidecar destination already exists: {sidecar_target}")
            return False

        try:
            shutil.move(str(sidecar), str(sidecar_target))
        except OSError as e:
            logger.error(f"Failed to move sidecar {sidecar}: {e}")
            return False
        return True

    def prune_empty_holding_dirs(self, start: Path):
        """Remove empty directories from ``start`` up to and including the holding root."""
        holding_root = self.holding_root
        current = start
        while True:
            if current != holding_root and holding_root not in current.parents:
                return
            try:
                if not current.is_dir() or any(current.iterdir()):
                    return
                current.rmdir()
            except OSError as e:
                logger.debug(f"Could not prune {current}: {e}")
                return
            if current == holding_root:
                return
            current = current.parent

    def holding_entries(self) -> List[str]:
        """Logical paths of the holding root's direct children, sidecars excluded."""
        if not self.holding_root.is_dir():
            return []

        return [
            self.to_logical(PurePosixPath(child.name))
            for child in sorted(self.holding_root.iterdir())
            if not self.is_sidecar(child)
        ]

    def is_holding_empty(self) -> bool:
        if not self.holding_root.is_dir():
            return True
        return not any(self.holding_root.iterdir())

    def _log_operation(self, record: RelocationRecord):
        self.operations_log.append(record)

    def get_operation_summary(self) -> Dict[str, Any]:
        """Get summary of all relocation attempts.

        Returns:
            Summary dictionary
        """
        by_outcome = {outcome.value: 0 for outcome in RelocationOutcome}
        for record in self.operations_log:
            by_outcome[record.outcome.value] += 1

        return {
            "total_operations": len(self.operations_log),
            "successful": by_outcome[RelocationOutcome.MOVED.value],
            "failed": len(self.operations_log) - by_outcome[RelocationOutcome.MOVED.value],
            "operations_by_type": {
                "exclude": sum(
                    1 for r in self.operations_log if r.operation_type == "exclude"
                ),
                "restore": sum(
                    1 for r in self.operations_log if r.operation_type == "restore"
                ),
            },
            "outcomes": by_outcome,
        }

    def export_operations_log(self) -> List[Dict[str, Any]]:
        exported = []
        for record in self.operations_log:
            data = asdict(record)
            data["outcome"] = record.outcome.value
            exported.append(data)
        return exported
