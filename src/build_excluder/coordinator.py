"""
Build hook coordinator.
Runs exclusion before a build and restoration after it (or at tool startup).
"""

import logging
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .exclusion_logic.defines import ConditionSet, DefineSource
from .exclusion_logic.rule_engine import RuleEngine, RulePreview
from .exclusion_logic.rule_set import RuleSetRepository
from .file_access.orphan_recovery import OrphanRecovery, RecoveryReport
from .file_access.relocator import AssetRelocator
from .session.tracker import SessionTracker

logger = logging.getLogger(__name__)


@dataclass
class ExclusionReport:
    """Outcome of a pre-build pass."""

    target: Optional[str]
    active_defines: List[str] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    untracked: List[str] = field(default_factory=list)


@dataclass
class RestorationReport:
    """Outcome of a post-build or startup restoration pass."""

    restored: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    recovery: RecoveryReport = field(default_factory=RecoveryReport)

    @property
    def restored_count(self) -> int:
        return len(self.restored) + len(self.recovery.restored)


class BuildHookCoordinator:
    """Glue between the host build pipeline and the exclusion machinery.

    ``on_pre_build`` and ``on_post_build`` may be called in any order, any
    number of times; neither raises into the host pipeline.
    """

    def __init__(
        self,
        relocator: AssetRelocator,
        tracker: SessionTracker,
        rule_repository: RuleSetRepository,
        define_source: DefineSource,
        recovery: Optional[OrphanRecovery] = None,
        rule_engine: Optional[RuleEngine] = None,
    ):
        self.relocator = relocator
        self.tracker = tracker
        self.rule_repository = rule_repository
        self.define_source = define_source
        self.recovery = recovery or OrphanRecovery(relocator)
        self.rule_engine = rule_engine or RuleEngine()

    def on_pre_build(self, target: Optional[str] = None) -> ExclusionReport:
        """
        Move every excluded asset out of the tree.

        Args:
            target: Build target used to look up the active defines

        Returns:
            ExclusionReport with excluded and failed paths
        """
        logger.info("Starting pre-build exclusion process...")
        report = ExclusionReport(target=target)

        if not self.rule_repository.exists():
            logger.warning("No rule file found, skipping exclusion.")
            return report

        try:
            rule_set = self.rule_repository.load()
            active = self.define_source.get_active_defines(target)
        except Exception as e:
            logger.error(f"Pre-build exclusion aborted: {e}")
            return report

        report.active_defines = list(active)
        logger.debug(f"Active defines for {target or 'default target'}: {active.to_string()}")

        candidates = []
        seen = set()
        for rule in rule_set:
            # First rule for a path wins
            if rule.asset_path in seen:
                logger.warning(f"Ignoring duplicate rule for {rule.asset_path}")
                continue
            seen.add(rule.asset_path)
            try:
                if self.rule_engine.should_exclude(rule, active):
                    candidates.append(rule.asset_path)
            except Exception as e:
                logger.error(f"Unexpected error evaluating {rule.asset_path}: {e}")
                report.failed.append(rule.asset_path)

        # Nested paths leave with their excluded ancestor
        deferred = []
        for asset_path in candidates:
            if self._ancestor_in(asset_path, candidates) is not None:
                deferred.append(asset_path)
                continue
            self._try_exclude(asset_path, report)

        for asset_path in deferred:
            ancestor = self._ancestor_in(asset_path, report.excluded)
            if ancestor is not None:
                logger.debug(f"{asset_path} excluded together with {ancestor}")
                continue
            self._try_exclude(asset_path, report)

        logger.info(f"Pre-build complete. Excluded {len(report.excluded)} assets.")
        return report

    def _ancestor_in(self, asset_path: str, paths: Sequence[str]) -> Optional[str]:
        relative = self.relocator.to_relative(asset_path)
        if relative is None:
            return None
        for other in paths:
            other_relative = self.relocator.to_relative(other)
            if other_relative is not None and other_relative in relative.parents:
                return other
        return None

    def _try_exclude(self, asset_path: str, report: ExclusionReport):
        try:
            self._exclude(asset_path, report)
        except Exception as e:
            logger.error(f"Unexpected error excluding {asset_path}: {e}")
            report.failed.append(asset_path)

    def _exclude(self, asset_path: str, report: ExclusionReport):
        if not self.relocator.exclude(asset_path):
            report.failed.append(asset_path)
            return

        report.excluded.append(asset_path)
        # An untracked exclusion is still put back by the orphan sweep
        if not self.tracker.record(asset_path):
            report.untracked.append(asset_path)

    def on_post_build(self) -> RestorationReport:
        logger.info("Starting post-build restoration process...")
        report = self.restore_excluded_assets()
        logger.info("Post-build restoration complete.")
        return report

    def on_startup(self) -> RestorationReport:
        """Restore anything a previous session left in holding."""
        return self.restore_excluded_assets()

    def restore_excluded_assets(self) -> RestorationReport:
        """
        Restore tracked assets, then sweep holding for orphans.

        Returns:
            RestorationReport with restored, failed and orphan results
        """
        report = RestorationReport()

        try:
            tracked = self.tracker.drain()
        except Exception as e:
            logger.error(f"Could not read session state: {e}")
            tracked = []

        for asset_path in tracked:
            try:
                if self.relocator.restore(asset_path):
                    report.restored.append(asset_path)
                else:
                    report.failed.append(asset_path)
            except Exception as e:
                logger.error(f"Unexpected error restoring {asset_path}: {e}")
                report.failed.append(asset_path)

        try:
            report.recovery = self.recovery.sweep_and_restore()
        except Exception as e:
            logger.error(f"Orphan recovery failed: {e}")

        self.tracker.clear()

        logger.info(f"Restored {report.restored_count} assets.")
        return report

    def active_defines(self, target: Optional[str] = None) -> ConditionSet:
        return self.define_source.get_active_defines(target)

    def preview(self, asset_path: str, target: Optional[str] = None) -> RulePreview:
        """What the next build for ``target`` would do to ``asset_path``."""
        rule_set = self.rule_repository.load()
        return self.rule_engine.preview(
            asset_path, rule_set, self.define_source.get_active_defines(target)
        )

    def run_build(self, command: Sequence[str], target: Optional[str] = None) -> int:
        """
        Run a build command between the pre-build and post-build hooks.

        Args:
            command: Build command and its arguments
            target: Build target used to look up the active defines

        Returns:
            Exit code of the build command
        """
        self.on_pre_build(target)
        try:
            logger.info(f"Running build command: {' '.join(command)}")
            completed = subprocess.run(list(command), check=False)
            return completed.returncode
        except OSError as e:
            logger.error(f"Failed to run build command: {e}")
            return 127
        finally:
            self.on_post_build()
