"""
Unit tests for the build hook coordinator.
"""

import json
import sys
import tempfile
from pathlib import Path

import pytest

from build_excluder.coordinator import BuildHookCoordinator
from build_excluder.exclusion_logic.defines import DefineSource
from build_excluder.exclusion_logic.rule_engine import ExclusionStatus
from build_excluder.exclusion_logic.rule_set import RuleSetRepository
from build_excluder.file_access.relocator import AssetRelocator
from build_excluder.session.tracker import (
    FileSessionStore,
    InMemorySessionStore,
    SessionTracker,
)


def write_rules(project: Path, entries):
    rules_file = project / "Assets" / "BuildExcluder" / "Editor" / "BuildExcludeConfig.json"
    rules_file.parent.mkdir(parents=True, exist_ok=True)
    rules_file.write_text(
        json.dumps(
            {"entries": [{"assetPath": path, "defines": defines} for path, defines in entries]}
        )
    )
    return rules_file


class TestBuildHookCoordinator:
    """Test the pre-build / post-build cycle."""

    @pytest.fixture
    def project(self):
        """Create a small project tree."""
        with tempfile.TemporaryDirectory() as project_dir:
            root = Path(project_dir)
            assets = root / "Assets"
            for name in ("A", "B", "DebugTools"):
                (assets / name).mkdir(parents=True)
                (assets / name / "content.txt").write_text(name)
                (assets / f"{name}.meta").write_text(f"meta {name}")
            yield root

    def make_coordinator(self, project: Path, defines=None, store=None):
        relocator = AssetRelocator(project)
        return BuildHookCoordinator(
            relocator=relocator,
            tracker=SessionTracker(store or InMemorySessionStore()),
            rule_repository=RuleSetRepository(
                project / "Assets" / "BuildExcluder" / "Editor" / "BuildExcludeConfig.json"
            ),
            define_source=DefineSource(override=defines or []),
        )

    def test_exclude_then_restore(self, project):
        """An excluded asset is tracked, then restored with an empty holding area."""
        write_rules(project, [("Assets/A", ["FOO"])])
        coordinator = self.make_coordinator(project, defines=[])

        report = coordinator.on_pre_build()

        assert report.excluded == ["Assets/A"]
        assert not (project / "Assets" / "A").exists()
        assert (project / "ExcludedAssets" / "A" / "content.txt").exists()
        assert coordinator.tracker.peek() == ["Assets/A"]

        restoration = coordinator.on_post_build()

        assert restoration.restored == ["Assets/A"]
        assert (project / "Assets" / "A" / "content.txt").read_text() == "A"
        assert (project / "Assets" / "A.meta").exists()
        assert coordinator.relocator.is_holding_empty()
        assert coordinator.tracker.is_empty()

    def test_negated_define(self, project):
        """[!DEBUG] excludes with DEBUG active and keeps the asset otherwise."""
        write_rules(project, [("Assets/B", ["!DEBUG"])])

        debug = self.make_coordinator(project, defines=["DEBUG"])
        assert debug.on_pre_build().excluded == ["Assets/B"]
        debug.on_post_build()

        release = self.make_coordinator(project, defines=[])
        assert release.on_pre_build().excluded == []
        assert (project / "Assets" / "B").exists()

    def test_included_assets_stay(self, project):
        """Assets whose defines are active are not moved."""
        write_rules(project, [("Assets/A", ["FOO"]), ("Assets/DebugTools", [])])
        coordinator = self.make_coordinator(project, defines=["foo"])

        report = coordinator.on_pre_build()

        assert report.excluded == []
        assert report.active_defines == ["foo"]
        assert coordinator.tracker.is_empty()

    def test_missing_rule_file_is_a_no_op(self, project):
        """Without a rule file the build proceeds untouched."""
        coordinator = self.make_coordinator(project)
        report = coordinator.on_pre_build()

        assert report.excluded == []
        assert report.failed == []
        assert (project / "Assets" / "A").exists()

    def test_corrupt_rule_file_is_a_no_op(self, project):
        """A corrupt rule file is treated as an empty rule set."""
        rules_file = write_rules(project, [])
        rules_file.write_text("{{{")

        report = self.make_coordinator(project).on_pre_build()
        assert report.excluded == []

    def test_failed_entry_does_not_stop_others(self, project):
        """A missing asset is reported and the remaining rules still run."""
        write_rules(
            project,
            [("Assets/Missing", ["FOO"]), ("Assets/A", ["FOO"]), ("Other/Path", ["FOO"])],
        )
        coordinator = self.make_coordinator(project)

        report = coordinator.on_pre_build()

        assert report.excluded == ["Assets/A"]
        assert report.failed == ["Assets/Missing", "Other/Path"]
        assert coordinator.tracker.peek() == ["Assets/A"]

    def test_duplicate_rules_first_wins(self, project):
        """Only the first rule for a path is evaluated."""
        write_rules(project, [("Assets/A", ["FOO"]), ("Assets/A", ["!FOO"])])
        coordinator = self.make_coordinator(project, defines=["FOO"])

        report = coordinator.on_pre_build()

        assert report.excluded == []
        assert (project / "Assets" / "A").exists()

    def test_same_base_name_rules(self, project):
        """Rules for different paths sharing a base name both round-trip."""
        for parent in ("X", "Y"):
            (project / "Assets" / parent / "Shared").mkdir(parents=True)
            (project / "Assets" / parent / "Shared" / "file.txt").write_text(parent)
        write_rules(project, [("Assets/X/Shared", ["FOO"]), ("Assets/Y/Shared", ["FOO"])])
        coordinator = self.make_coordinator(project)

        report = coordinator.on_pre_build()
        assert report.excluded == ["Assets/X/Shared", "Assets/Y/Shared"]

        coordinator.on_post_build()
        assert (project / "Assets" / "X" / "Shared" / "file.txt").read_text() == "X"
        assert (project / "Assets" / "Y" / "Shared" / "file.txt").read_text() == "Y"
        assert coordinator.relocator.is_holding_empty()

    def test_nested_rule_listed_before_parent(self, project):
        """A child rule ahead of its parent's rule leaves the build with the parent."""
        (project / "Assets" / "A" / "B").mkdir()
        (project / "Assets" / "A" / "B" / "inner.txt").write_text("inner")
        (project / "Assets" / "A" / "B.meta").write_text("meta B")
        write_rules(project, [("Assets/A/B", ["FOO"]), ("Assets/A", ["FOO"])])
        coordinator = self.make_coordinator(project)

        report = coordinator.on_pre_build()

        assert report.excluded == ["Assets/A"]
        assert report.failed == []
        assert not (project / "Assets" / "A").exists()
        assert (project / "ExcludedAssets" / "A" / "B" / "inner.txt").exists()

        coordinator.on_post_build()

        assert (project / "Assets" / "A" / "B" / "inner.txt").read_text() == "inner"
        assert (project / "Assets" / "A" / "B.meta").exists()
        assert coordinator.relocator.is_holding_empty()

    def test_nested_rule_alone_is_excluded(self, project):
        """A child rule still applies when its parent stays in the build."""
        (project / "Assets" / "A" / "B").mkdir()
        write_rules(project, [("Assets/A/B", ["FOO"]), ("Assets/A", ["!FOO"])])
        coordinator = self.make_coordinator(project)

        report = coordinator.on_pre_build()

        assert report.excluded == ["Assets/A/B"]
        assert (project / "Assets" / "A" / "content.txt").exists()
        assert (project / "ExcludedAssets" / "A" / "B").is_dir()

    def test_already_held_path_conflicts(self, project):
        """Excluding onto an occupied holding slot fails instead of overwriting."""
        stale = project / "ExcludedAssets" / "A"
        stale.mkdir(parents=True)
        (stale / "old.txt").write_text("old")
        write_rules(project, [("Assets/A", ["FOO"])])

        report = self.make_coordinator(project).on_pre_build()

        assert report.failed == ["Assets/A"]
        assert (stale / "old.txt").read_text() == "old"
        assert (project / "Assets" / "A" / "content.txt").exists()

    def test_post_build_without_pre_build(self, project):
        """Post-build can run on its own."""
        report = self.make_coordinator(project).on_post_build()
        assert report.restored_count == 0

    def test_pre_build_twice(self, project):
        """A second pre-build finds nothing left to move and does not crash."""
        write_rules(project, [("Assets/A", ["FOO"])])
        coordinator = self.make_coordinator(project)

        coordinator.on_pre_build()
        second = coordinator.on_pre_build()

        assert second.failed == ["Assets/A"]
        coordinator.on_post_build()
        assert (project / "Assets" / "A").exists()

    def test_crash_recovery_on_startup(self, project):
        """A new process restores what a killed one left in holding."""
        write_rules(project, [("Assets/A", ["FOO"])])
        self.make_coordinator(project).on_pre_build()
        assert not (project / "Assets" / "A").exists()

        # Fresh tracker: the in-memory session of the crashed process is gone
        report = self.make_coordinator(project).on_startup()

        assert report.restored == []
        assert report.recovery.restored == ["Assets/A"]
        assert (project / "Assets" / "A" / "content.txt").exists()
        assert (project / "Assets" / "A.meta").exists()
        assert not (project / "ExcludedAssets").exists()

    def test_file_store_shared_between_instances(self, project):
        """Separate coordinator instances share state through the file store."""
        write_rules(project, [("Assets/A", ["FOO"]), ("Assets/B", ["FOO"])])
        session_file = project / "Temp" / "session.txt"

        self.make_coordinator(project, store=FileSessionStore(session_file)).on_pre_build()
        report = self.make_coordinator(
            project, store=FileSessionStore(session_file)
        ).on_post_build()

        assert report.restored == ["Assets/A", "Assets/B"]
        assert not report.recovery.found_orphans
        assert not session_file.exists()

    def test_conflicting_orphan_left_in_place(self, project):
        """Restoration leaves an orphan alone when the live asset reappeared."""
        write_rules(project, [("Assets/A", ["FOO"])])
        coordinator = self.make_coordinator(project)
        coordinator.on_pre_build()
        (project / "Assets" / "A").mkdir()
        (project / "Assets" / "A" / "content.txt").write_text("regenerated")

        report = coordinator.on_post_build()

        assert report.failed == ["Assets/A"]
        assert (project / "Assets" / "A" / "content.txt").read_text() == "regenerated"
        assert (project / "ExcludedAssets" / "A" / "content.txt").read_text() == "A"
        assert coordinator.tracker.is_empty()

    def test_unexpected_errors_do_not_escape(self, project, mocker):
        """Hooks never raise into the host pipeline."""
        write_rules(project, [("Assets/A", ["FOO"])])
        coordinator = self.make_coordinator(project)
        mocker.patch.object(
            coordinator.relocator, "exclude", side_effect=RuntimeError("boom")
        )
        mocker.patch.object(
            coordinator.recovery, "sweep_and_restore", side_effect=RuntimeError("boom")
        )

        assert coordinator.on_pre_build().failed == ["Assets/A"]
        assert coordinator.on_post_build().restored == []

    def test_preview(self, project):
        """Preview reports the would-be outcome without moving anything."""
        write_rules(project, [("Assets/DebugTools", ["!DEBUG_BUILD"])])

        preview = self.make_coordinator(project, defines=["DEBUG_BUILD"]).preview(
            "Assets/DebugTools"
        )

        assert preview.status is ExclusionStatus.EXCLUDED
        assert (project / "Assets" / "DebugTools").exists()
        assert not (project / "ExcludedAssets").exists()

    def test_run_build_restores_after_command(self, project):
        """run_build wraps a command in the hooks and returns its exit code."""
        write_rules(project, [("Assets/A", ["FOO"])])
        coordinator = self.make_coordinator(project)
        probe = project / "seen.txt"
        script = (
            "import os, sys; "
            f"open({str(probe)!r}, 'w').write(str(os.path.exists({str(project / 'Assets' / 'A')!r}))); "
            "sys.exit(3)"
        )

        exit_code = coordinator.run_build([sys.executable, "-c", script])

        assert exit_code == 3
        assert probe.read_text() == "False"
        assert (project / "Assets" / "A").exists()

    def test_run_build_missing_command(self, project):
        """A build command that cannot start still restores assets."""
        write_rules(project, [("Assets/A", ["FOO"])])
        coordinator = self.make_coordinator(project)

        exit_code = coordinator.run_build(["definitely-not-a-real-build-tool-xyz"])

        assert exit_code == 127
        assert (project / "Assets" / "A").exists()
