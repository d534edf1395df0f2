"""
Rule engine deciding whether an asset is excluded for a set of active defines.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from .defines import ConditionSet
from .rule_set import ExcludeRule

logger = logging.getLogger(__name__)

NEGATION_PREFIX = "!"


class ExclusionStatus(Enum):
    """Outcome shown by the editor preview."""

    EXCLUDED = "excluded"
    INCLUDED = "included"
    UNCONFIGURED = "unconfigured"


@dataclass(frozen=True)
class RulePreview:
    """Would-be outcome of a rule under the live defines."""

    asset_path: str
    rule: Optional[ExcludeRule]
    status: ExclusionStatus

    @property
    def would_exclude(self) -> bool:
        return self.status is ExclusionStatus.EXCLUDED

    def describe(self) -> str:
        if self.status is ExclusionStatus.UNCONFIGURED:
            return f"{self.asset_path}: no define constraints"
        verdict = "EXCLUDED" if self.would_exclude else "INCLUDED"
        return f"{self.asset_path}: would be {verdict} ({', '.join(self.rule.defines)})"


class RuleEngine:
    """Evaluate exclude rules against an active condition set.

    Each define listed on a rule names a situation in which the asset is
    INCLUDED: ``X`` includes it while ``X`` is active, ``!X`` includes it
    while ``X`` is not active. The asset is excluded only when none of its
    defines justify inclusion. Rules without defines never exclude.
    """

    def should_exclude(self, rule: ExcludeRule, active: ConditionSet) -> bool:
        """
        Decide whether a rule's asset is excluded.

        Args:
            rule: Exclude rule to evaluate
            active: Defines enabled for the current build

        Returns:
            True if the asset must be removed from the build
        """
        if not rule.defines:
            return False

        for define in rule.defines:
            token = define.strip() if isinstance(define, str) else ""
            if not token:
                continue

            if token.startswith(NEGATION_PREFIX):
                name = token[len(NEGATION_PREFIX) :].strip()
                if not name:
                    continue
                if name not in active:
                    return False
            elif token in active:
                return False

        return True

    def find_rule(
        self, rules: Iterable[ExcludeRule], asset_path: str
    ) -> Optional[ExcludeRule]:
        """Return the first rule for an asset path, or None."""
        for rule in rules:
            if rule.asset_path == asset_path:
                return rule
        return None

    def preview(
        self, asset_path: str, rules: Iterable[ExcludeRule], active: ConditionSet
    ) -> RulePreview:
        """Report what a build with ``active`` defines would do to an asset."""
        rule = self.find_rule(rules, asset_path)
        if rule is None or rule.is_inert:
            return RulePreview(asset_path, rule, ExclusionStatus.UNCONFIGURED)

        if self.should_exclude(rule, active):
            status = ExclusionStatus.EXCLUDED
        else:
            status = ExclusionStatus.INCLUDED
        return RulePreview(asset_path, rule, status)


_default_engine = RuleEngine()


def should_exclude(rule: ExcludeRule, active: ConditionSet) -> bool:
    """Module-level shortcut for RuleEngine().should_exclude."""
    return _default_engine.should_exclude(rule, active)
