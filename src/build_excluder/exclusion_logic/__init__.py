"""
Rule evaluation for conditional asset exclusion.
"""

from .defines import ConditionSet, DefineSource, parse_define_string
from .rule_set import ExcludeRule, RuleSet, RuleSetRepository
from .rule_engine import RuleEngine, RulePreview, ExclusionStatus, should_exclude

__all__ = [
    "ConditionSet",
    "DefineSource",
    "parse_define_string",
    "ExcludeRule",
    "RuleSet",
    "RuleSetRepository",
    "RuleEngine",
    "RulePreview",
    "ExclusionStatus",
    "should_exclude",
]
