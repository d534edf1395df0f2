"""
Configuration management for the build excluder.
Handles loading, validation, and merging of tool settings from multiple sources.
"""

import os
import json
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional
import argparse
from copy import deepcopy

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = "BUILD_EXCLUDER_"

# Keys consumed directly by DefineSource, not config overrides
RESERVED_ENV_VARS = {"BUILD_EXCLUDER_DEFINES"}


class ConfigurationError(ValueError):
    """Raised when the tool configuration holds invalid values."""


class ConfigManager:
    """Manage configuration from environment variables, files, and command line."""

    def __init__(
        self,
        config_file: Optional[Path] = None,
        cli_args: Optional[argparse.Namespace] = None,
        use_dotenv: bool = True,
    ):
        """
        Initialize configuration manager.

        Args:
            config_file: Optional path to a JSON or YAML configuration file
            cli_args: Optional command line arguments
            use_dotenv: Whether to read a .env file into the environment first
        """
        if use_dotenv:
            load_dotenv()

        self.config = self._load_default_config()

        if config_file and config_file.exists():
            self._load_from_file(config_file)
        elif config_file:
            logger.warning(f"Configuration file not found: {config_file}")

        self._load_from_env()

        if cli_args:
            self._load_from_cli(cli_args)

        self._validate_config()

        logger.debug("Configuration loaded successfully")

    def _load_default_config(self) -> Dict[str, Any]:
        """Load default configuration."""
        return {
            "project": {
                "root": ".",
                "tree_dir": "Assets",
                "holding_dir": "ExcludedAssets",
                "sidecar_suffix": ".meta",
                "rules_file": "Assets/BuildExcluder/Editor/BuildExcludeConfig.json",
            },
            "session": {
                "backend": "file",  # 'file' or 'memory'
                "file": "Temp/build_excluder_session.txt",
                "key": "build_excluder.excluded_paths",
            },
            "defines": {
                "default": [],
                "targets": {},
            },
            "logging": {
                "level": "INFO",
                "file": None,
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            },
        }

    def _load_from_file(self, config_file: Path):
        """Load configuration from file."""
        logger.info(f"Loading configuration from {config_file}")

        try:
            with open(config_file, "r", encoding="utf-8") as f:
                if config_file.suffix == ".json":
                    file_config = json.load(f)
                elif config_file.suffix in (".yaml", ".yml"):
                    file_config = yaml.safe_load(f)
                else:
                    raise ConfigurationError(
                        f"Unsupported config file format: {config_file}"
                    )
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            logger.error(f"Error loading config file: {e}")
            raise ConfigurationError(f"Cannot read {config_file}: {e}") from e

        if file_config is None:
            return
        if not isinstance(file_config, dict):
            raise ConfigurationError(f"Config file must hold a mapping: {config_file}")

        self._deep_merge(self.config, file_config)

    def _load_from_env(self):
        """Load configuration from environment variables."""
        if "LOG_LEVEL" in os.environ:
            self._set_nested_config(
                self.config, ["logging", "level"], os.environ["LOG_LEVEL"].upper()
            )

        # BUILD_EXCLUDER_PROJECT__ROOT -> project.root
        for key, value in os.environ.items():
            if key.startswith(ENV_PREFIX) and key not in RESERVED_ENV_VARS:
                config_path = key[len(ENV_PREFIX) :].lower().split("__")
                self._set_nested_config(self.config, config_path, value)

    def _load_from_cli(self, cli_args: argparse.Namespace):
        """Load configuration from command line arguments."""
        cli_mappings = {
            "project_root": ["project", "root"],
            "rules_file": ["project", "rules_file"],
            "holding_dir": ["project", "holding_dir"],
            "session_backend": ["session", "backend"],
            "log_level": ["logging", "level"],
            "log_file": ["logging", "file"],
            "config": None,  # Already handled
        }

        for arg_name, config_path in cli_mappings.items():
            if hasattr(cli_args, arg_name) and getattr(cli_args, arg_name) is not None:
                if config_path:
                    self._set_nested_config(
                        self.config, config_path, getattr(cli_args, arg_name)
                    )

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]):
        """Deep merge update dictionary into base dictionary."""
        for key, value in update.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def _set_nested_config(
        self, config_dict: Dict[str, Any], path: List[str], value: Any
    ):
        """Set a value in a nested dictionary using a path."""
        if isinstance(value, str):
            if value.lower() in ("true", "false"):
                value = value.lower() == "true"
            elif value.isdigit():
                value = int(value)
            elif value.startswith("[") and value.endswith("]"):
                try:
                    value = json.loads(value)
                except json.JSONDecodeError:
                    pass

        current = config_dict
        for part in path[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]
        current[path[-1]] = value

    def _validate_config(self):
        """Validate configuration values."""
        errors = []

        project = self.config["project"]
        for field in ("tree_dir", "holding_dir", "rules_file"):
            if not isinstance(project.get(field), str) or not project[field].strip():
                errors.append(f"project.{field} must be a non-empty string")

        if project.get("tree_dir") == project.get("holding_dir"):
            errors.append("project.holding_dir must differ from project.tree_dir")

        suffix = project.get("sidecar_suffix")
        if not isinstance(suffix, str) or not suffix:
            errors.append("project.sidecar_suffix must be a non-empty string")

        if self.config["session"]["backend"] not in ("file", "memory"):
            errors.append("session backend must be 'file' or 'memory'")

        defines = self.config["defines"]
        if not isinstance(defines.get("default"), list):
            errors.append("defines.default must be a list")
        if not isinstance(defines.get("targets"), dict):
            errors.append("defines.targets must be a mapping of target to list")

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if str(self.config["logging"]["level"]).upper() not in valid_log_levels:
            errors.append(f"logging level must be one of {valid_log_levels}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}"
            )

    def get(self, path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            path: Configuration path (e.g., 'project.holding_dir')
            default: Default value if path not found

        Returns:
            Configuration value or default
        """
        parts = path.split(".")
        current = self.config

        for part in parts:
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default

        return current

    def set(self, path: str, value: Any):
        """
        Set configuration value using dot notation.

        Args:
            path: Configuration path (e.g., 'session.backend')
            value: Value to set
        """
        parts = path.split(".")
        current = self.config

        for part in parts[:-1]:
            if part not in current:
                current[part] = {}
            current = current[part]

        current[parts[-1]] = value

    @property
    def project_root(self) -> Path:
        return Path(self.config["project"]["root"]).expanduser().resolve()

    def resolve_project_path(self, relative: str) -> Path:
        """Resolve a project-relative setting against the project root."""
        path = Path(relative)
        if path.is_absolute():
            return path
        return self.project_root / path

    def save(self, filepath: Path, format: str = "json"):
        """
        Save configuration to file.

        Args:
            filepath: Path to save configuration
            format: File format ('json' or 'yaml')
        """
        logger.info(f"Saving configuration to {filepath}")

        snapshot = deepcopy(self.config)
        with open(filepath, "w", encoding="utf-8") as f:
            if format == "json":
                json.dump(snapshot, f, indent=2)
            elif format in ("yaml", "yml"):
                yaml.safe_dump(snapshot, f, default_flow_style=False)
            else:
                raise ValueError(f"Unsupported format: {format}")
