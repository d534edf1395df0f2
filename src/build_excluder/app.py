"""
Command-line host for the build excluder.
Wires configuration, logging and components together and exposes the build hooks.
"""

import sys
import argparse
import logging
import traceback
from pathlib import Path
from typing import Optional, List, Dict, Any

from .coordinator import BuildHookCoordinator
from .exclusion_logic.defines import DefineSource, parse_define_string
from .exclusion_logic.rule_engine import RuleEngine
from .exclusion_logic.rule_set import RuleSetRepository
from .file_access.orphan_recovery import OrphanRecovery
from .file_access.relocator import AssetRelocator
from .session.tracker import FileSessionStore, SessionTracker, default_session_store
from .utils.config_manager import ConfigManager, ConfigurationError
from .utils.logging_config import DEFAULT_FORMAT, setup_logging

logger = logging.getLogger(__name__)


class BuildExcluderApp:
    """Application controller owning one set of build excluder components."""

    def __init__(
        self,
        config_file: Optional[str] = None,
        cli_args: Optional[argparse.Namespace] = None,
        define_override: Optional[List[str]] = None,
    ):
        """Initialize the application.

        Args:
            config_file: Path to tool configuration file (JSON or YAML)
            cli_args: Parsed command line arguments used as config overrides
            define_override: Defines replacing every configured source
        """
        self.config_file = config_file
        self.cli_args = cli_args
        self.define_override = define_override
        self.config_manager: Optional[ConfigManager] = None
        self.components: Dict[str, Any] = {}
        self._is_initialized = False

    def initialize(self, configure_logging: bool = True):
        """Load configuration and build all components."""
        if self._is_initialized:
            return

        self.config_manager = ConfigManager(
            config_file=Path(self.config_file) if self.config_file else None,
            cli_args=self.cli_args,
        )

        if configure_logging:
            self._setup_logging()

        self._initialize_components()
        self._is_initialized = True
        logger.debug("Application initialized successfully")

    def _setup_logging(self):
        log_config = self.config_manager.get("logging", {})
        log_file = log_config.get("file")
        setup_logging(
            log_level=str(log_config.get("level", "INFO")),
            log_file=str(self.config_manager.resolve_project_path(log_file))
            if log_file
            else None,
            log_format=log_config.get("format") or DEFAULT_FORMAT,
        )

    def _initialize_components(self):
        config = self.config_manager
        project_root = config.project_root

        relocator = AssetRelocator(
            project_root=project_root,
            tree_dir=config.get("project.tree_dir"),
            holding_dir=config.get("project.holding_dir"),
            sidecar_suffix=config.get("project.sidecar_suffix"),
        )

        if config.get("session.backend") == "memory":
            store = default_session_store
        else:
            store = FileSessionStore(
                config.resolve_project_path(config.get("session.file"))
            )
        tracker = SessionTracker(store=store, key=config.get("session.key"))

        rule_repository = RuleSetRepository(
            config.resolve_project_path(config.get("project.rules_file"))
        )
        define_source = DefineSource.from_config(config, override=self.define_override)

        self.components["relocator"] = relocator
        self.components["tracker"] = tracker
        self.components["rule_repository"] = rule_repository
        self.components["define_source"] = define_source
        self.components["coordinator"] = BuildHookCoordinator(
            relocator=relocator,
            tracker=tracker,
            rule_repository=rule_repository,
            define_source=define_source,
            recovery=OrphanRecovery(relocator),
            rule_engine=RuleEngine(),
        )

    @property
    def coordinator(self) -> BuildHookCoordinator:
        if not self._is_initialized:
            self.initialize()
        return self.components["coordinator"]

    @property
    def rule_repository(self) -> RuleSetRepository:
        if not self._is_initialized:
            self.initialize()
        return self.components["rule_repository"]

    def status(self) -> Dict[str, Any]:
        """Describe holding and session state for diagnostics."""
        relocator: AssetRelocator = self.coordinator.relocator
        tracker: SessionTracker = self.coordinator.tracker
        return {
            "project_root": str(relocator.project_root),
            "rules_file": str(self.rule_repository.rules_file),
            "rules_file_exists": self.rule_repository.exists(),
            "holding_dir": str(relocator.holding_root),
            "held_entries": relocator.holding_entries(),
            "tracked_paths": tracker.peek(),
            "clean": relocator.is_holding_empty() and tracker.is_empty(),
        }


def create_argument_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser."""
    parser = argparse.ArgumentParser(
        prog="build-excluder",
        description="Exclude assets from a build based on active build defines",
    )

    parser.add_argument("--config", help="Path to configuration file", default=None)
    parser.add_argument(
        "--project-root", help="Project directory containing the asset tree", default=None
    )
    parser.add_argument("--rules-file", help="Path to the rule file", default=None)
    parser.add_argument(
        "--session-backend",
        choices=["file", "memory"],
        help="Where the excluded-path list is kept between hooks",
        default=None,
    )
    parser.add_argument("--log-file", help="Also write logs to this file", default=None)
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
        default=None,
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_define_options(sub: argparse.ArgumentParser):
        sub.add_argument("--target", help="Build target to resolve defines for", default=None)
        sub.add_argument(
            "--define",
            "-D",
            action="append",
            dest="defines",
            help="Active define (repeatable, or ';'-separated); overrides configuration",
        )

    pre_build = subparsers.add_parser("pre-build", help="Move excluded assets out of the tree")
    add_define_options(pre_build)

    subparsers.add_parser("post-build", help="Restore assets after a build")
    subparsers.add_parser(
        "restore", help="Restore all excluded and orphaned assets (startup trigger)"
    )

    preview = subparsers.add_parser("preview", help="Show whether an asset would be excluded")
    preview.add_argument("asset_path", help="Asset path, e.g. Assets/DebugTools")
    add_define_options(preview)

    defines = subparsers.add_parser("defines", help="Show the active defines")
    add_define_options(defines)

    subparsers.add_parser("status", help="Report holding area and session state")

    rules = subparsers.add_parser("rules", help="Edit the rule file")
    rules_sub = rules.add_subparsers(dest="rules_command", required=True)
    rules_sub.add_parser("list", help="List configured rules")
    rules_set = rules_sub.add_parser("set", help="Set the defines of an asset's rule")
    rules_set.add_argument("asset_path")
    rules_set.add_argument(
        "rule_defines", nargs="*", metavar="DEFINE", help="Defines; none removes the rule"
    )
    rules_remove = rules_sub.add_parser("remove", help="Remove an asset's rule")
    rules_remove.add_argument("asset_path")
    rules_sub.add_parser("init", help="Create the rule file with sample rules")

    run = subparsers.add_parser("run", help="Run a build command between the hooks")
    add_define_options(run)
    run.add_argument("build_command", nargs=argparse.REMAINDER, help="Build command")

    return parser


def _collect_defines(args: argparse.Namespace) -> Optional[List[str]]:
    raw = getattr(args, "defines", None)
    if raw is None:
        return None
    collected: List[str] = []
    for value in raw:
        collected.extend(parse_define_string(value))
    return collected


def _run_rules_command(app: BuildExcluderApp, args: argparse.Namespace) -> int:
    repository = app.rule_repository

    if args.rules_command == "list":
        rule_set = repository.load()
        if not len(rule_set):
            print("No rules configured")
        for rule in rule_set:
            print(f"{rule.asset_path}: {', '.join(rule.defines) or '(none)'}")
        return 0

    if args.rules_command == "set":
        repository.set_defines(args.asset_path, args.rule_defines)
        return 0

    if args.rules_command == "remove":
        if not repository.remove_rule(args.asset_path):
            print(f"No rule for {args.asset_path}")
            return 1
        return 0

    if args.rules_command == "init":
        rule_set = repository.create_default()
        print(f"Wrote {len(rule_set)} sample rules to {repository.rules_file}")
        return 0

    return 2


def run_command(app: BuildExcluderApp, args: argparse.Namespace) -> int:
    """Dispatch a parsed command and return the process exit code."""
    command = args.command
    target = getattr(args, "target", None)

    if command == "pre-build":
        report = app.coordinator.on_pre_build(target)
        for path in report.failed:
            print(f"Not excluded: {path}")
        return 0

    if command == "post-build":
        app.coordinator.on_post_build()
        return 0

    if command == "restore":
        report = app.coordinator.on_startup()
        for path in report.recovery.conflicts:
            print(f"Left in holding (original location occupied): {path}")
        return 0

    if command == "preview":
        print(app.coordinator.preview(args.asset_path, target).describe())
        return 0

    if command == "defines":
        active = app.coordinator.active_defines(target)
        print(", ".join(active) if len(active) else "No defines set")
        return 0

    if command == "status":
        status = app.status()
        print(f"Project: {status['project_root']}")
        print(
            f"Rule file: {status['rules_file']}"
            f"{'' if status['rules_file_exists'] else ' (missing)'}"
        )
        for path in status["held_entries"]:
            print(f"Held: {path}")
        for path in status["tracked_paths"]:
            print(f"Tracked: {path}")
        if not status["clean"]:
            print("Holding area is not empty: a previous build did not finish restoring")
        return 0

    if command == "rules":
        return _run_rules_command(app, args)

    if command == "run":
        build_command = list(args.build_command)
        if build_command and build_command[0] == "--":
            build_command = build_command[1:]
        if not build_command:
            print("No build command given")
            return 2
        return app.coordinator.run_build(build_command, target)

    return 2


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        args.log_level = "DEBUG"

    app = BuildExcluderApp(
        config_file=args.config, cli_args=args, define_override=_collect_defines(args)
    )

    try:
        app.initialize()
        return run_command(app, args)
    except ConfigurationError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error(f"Invalid configuration: {e}")
        return 2
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"build-excluder failed: {e}")
        if args.verbose:
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
