"""
Exclude rules and their on-disk rule file.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class ExcludeRule:
    """Maps an asset path to the defines that keep it in the build."""

    asset_path: str
    defines: List[str] = field(default_factory=list)

    @property
    def is_inert(self) -> bool:
        """A rule without defines never excludes anything."""
        return len(self.defines) == 0

    def to_dict(self) -> Dict[str, Any]:
        return {"assetPath": self.asset_path, "defines": list(self.defines)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExcludeRule":
        asset_path = data.get("assetPath")
        if not isinstance(asset_path, str) or not asset_path.strip():
            raise ValueError(f"Rule has no assetPath: {data!r}")

        defines = data.get("defines") or []
        if isinstance(defines, str):
            defines = [defines]
        if not isinstance(defines, list):
            raise ValueError(f"Rule defines must be a list: {data!r}")

        return cls(asset_path=asset_path.strip(), defines=[str(d) for d in defines])


@dataclass
class RuleSet:
    """Ordered list of exclude rules."""

    entries: List[ExcludeRule] = field(default_factory=list)

    def __iter__(self) -> Iterator[ExcludeRule]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def find(self, asset_path: str) -> Optional[ExcludeRule]:
        """First rule for ``asset_path``; later duplicates are shadowed."""
        for rule in self.entries:
            if rule.asset_path == asset_path:
                return rule
        return None

    def prune_inert(self) -> int:
        """Drop rules without defines, returning how many were removed."""
        before = len(self.entries)
        self.entries = [rule for rule in self.entries if not rule.is_inert]
        return before - len(self.entries)

    def to_dict(self) -> Dict[str, Any]:
        return {"entries": [rule.to_dict() for rule in self.entries]}

    @classmethod
    def from_dict(cls, data: Any) -> "RuleSet":
        if not isinstance(data, dict):
            raise ValueError("Rule file must hold a mapping with an 'entries' list")

        raw_entries = data.get("entries") or []
        if not isinstance(raw_entries, list):
            raise ValueError("'entries' must be a list")

        entries = []
        for index, raw in enumerate(raw_entries):
            if not isinstance(raw, dict):
                logger.warning(f"Skipping malformed rule #{index}: {raw!r}")
                continue
            try:
                entries.append(ExcludeRule.from_dict(raw))
            except ValueError as e:
                logger.warning(f"Skipping rule #{index}: {e}")
        return cls(entries=entries)


DEFAULT_RULES = [
    ExcludeRule("Assets/StoreSpecific/GooglePlay", ["STORE_GOOGLEPLAY"]),
    ExcludeRule("Assets/StoreSpecific/AppGallery", ["STORE_APPGALLERY"]),
    ExcludeRule("Assets/DebugTools", ["!DEBUG_BUILD"]),
    ExcludeRule("Assets/DeveloperAssets", ["!DEVELOPMENT_BUILD"]),
]


class RuleSetRepository:
    """Load and save the rule file.

    Loading never raises: a missing, empty or corrupt file reads as an empty
    rule set and the problem is logged. Saving prunes inert rules.
    """

    def __init__(self, rules_file: Path):
        self.rules_file = Path(rules_file)

    def exists(self) -> bool:
        return self.rules_file.is_file()

    def load(self) -> RuleSet:
        if not self.rules_file.exists():
            logger.warning(f"No rule file found at {self.rules_file}")
            return RuleSet()

        try:
            with open(self.rules_file, "r", encoding="utf-8") as f:
                if self._is_yaml():
                    payload = yaml.safe_load(f)
                else:
                    text = f.read()
                    payload = json.loads(text) if text.strip() else None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
            logger.error(f"Failed to load rule file {self.rules_file}: {e}")
            return RuleSet()

        if payload is None:
            return RuleSet()

        try:
            rule_set = RuleSet.from_dict(payload)
        except ValueError as e:
            logger.error(f"Invalid rule file {self.rules_file}: {e}")
            return RuleSet()

        logger.debug(f"Loaded {len(rule_set)} rules from {self.rules_file}")
        return rule_set

    def save(self, rule_set: RuleSet) -> bool:
        """Write the rule set, returning False if the file cannot be written."""
        pruned = rule_set.prune_inert()
        if pruned:
            logger.info(f"Pruned {pruned} rules without defines")

        try:
            self.rules_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.rules_file, "w", encoding="utf-8") as f:
                if self._is_yaml():
                    yaml.safe_dump(rule_set.to_dict(), f, default_flow_style=False)
                else:
                    json.dump(rule_set.to_dict(), f, indent=4)
                    f.write("\n")
        except OSError as e:
            logger.error(f"Failed to save rule file {self.rules_file}: {e}")
            return False

        logger.info(f"Saved {len(rule_set)} rules to {self.rules_file}")
        return True

    def set_defines(self, asset_path: str, defines: List[str]) -> RuleSet:
        """Create or replace the defines of the first rule for ``asset_path``.

        An empty ``defines`` list removes the rule on save.
        """
        rule_set = self.load()
        rule = rule_set.find(asset_path)
        if rule is None:
            rule_set.entries.append(ExcludeRule(asset_path, list(defines)))
        else:
            rule.defines = list(defines)
        self.save(rule_set)
        return rule_set

    def find_rule(self, asset_path: str) -> Optional[ExcludeRule]:
        return self.load().find(asset_path)

    def remove_rule(self, asset_path: str) -> bool:
        rule_set = self.load()
        remaining = [rule for rule in rule_set.entries if rule.asset_path != asset_path]
        if len(remaining) == len(rule_set.entries):
            return False
        rule_set.entries = remaining
        return self.save(rule_set)

    def create_default(self) -> RuleSet:
        """Overwrite the rule file with the sample store/debug rules."""
        rule_set = RuleSet(
            entries=[ExcludeRule(r.asset_path, list(r.defines)) for r in DEFAULT_RULES]
        )
        self.save(rule_set)
        return rule_set

    def _is_yaml(self) -> bool:
        return self.rules_file.suffix in (".yaml", ".yml")
