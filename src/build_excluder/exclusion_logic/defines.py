"""
Active build condition sets and where they come from.
"""

import os
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional

logger = logging.getLogger(__name__)

DEFINES_ENV_VAR = "BUILD_EXCLUDER_DEFINES"
DEFINE_SEPARATOR = ";"


def parse_define_string(value: str) -> List[str]:
    """Split a ';'-separated define string, dropping empty entries."""
    return [part.strip() for part in value.split(DEFINE_SEPARATOR) if part.strip()]


class ConditionSet:
    """Set of active define tokens, compared case-insensitively."""

    def __init__(self, defines: Optional[Iterable[str]] = None):
        self._original: List[str] = []
        self._folded = set()

        for define in defines or ():
            token = define.strip()
            if not token or token.casefold() in self._folded:
                continue
            self._original.append(token)
            self._folded.add(token.casefold())

    @classmethod
    def from_string(cls, value: str) -> "ConditionSet":
        return cls(parse_define_string(value))

    def __contains__(self, define: object) -> bool:
        if not isinstance(define, str):
            return False
        return define.strip().casefold() in self._folded

    def __iter__(self) -> Iterator[str]:
        return iter(self._original)

    def __len__(self) -> int:
        return len(self._original)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ConditionSet):
            return self._folded == other._folded
        return NotImplemented

    def __repr__(self) -> str:
        return f"ConditionSet({self._original!r})"

    def to_string(self) -> str:
        return DEFINE_SEPARATOR.join(self._original)


class DefineSource:
    """Resolve the active defines for a build target.

    Lookup order, first hit wins:

    1. ``override`` passed to the constructor (e.g. ``--define`` on the CLI)
    2. the ``BUILD_EXCLUDER_DEFINES`` environment variable
    3. ``targets[<target>]`` from the tool configuration
    4. ``default`` from the tool configuration

    The environment is read on every call so each pre-build sees fresh values.
    """

    def __init__(
        self,
        default: Optional[Iterable[str]] = None,
        targets: Optional[Dict[str, Any]] = None,
        override: Optional[Iterable[str]] = None,
        env_var: str = DEFINES_ENV_VAR,
    ):
        self.default = list(default or [])
        self.targets = dict(targets or {})
        self.override = list(override) if override is not None else None
        self.env_var = env_var

    @classmethod
    def from_config(cls, config, override: Optional[Iterable[str]] = None):
        """Build a source from a ConfigManager's ``defines`` section."""
        return cls(
            default=config.get("defines.default", []),
            targets=config.get("defines.targets", {}),
            override=override,
        )

    def get_active_defines(self, target: Optional[str] = None) -> ConditionSet:
        if self.override is not None:
            return ConditionSet(self.override)

        env_value = os.environ.get(self.env_var)
        if env_value is not None:
            return ConditionSet.from_string(env_value)

        if target is not None:
            target_defines = self._lookup_target(target)
            if target_defines is not None:
                return ConditionSet(target_defines)
            logger.warning(f"No defines configured for target '{target}', using default")

        return ConditionSet(self.default)

    def _lookup_target(self, target: str) -> Optional[List[str]]:
        for name, defines in self.targets.items():
            if name.casefold() != target.casefold():
                continue
            if isinstance(defines, str):
                return parse_define_string(defines)
            if isinstance(defines, list):
                return [str(define) for define in defines]
            logger.warning(f"Ignoring malformed defines for target '{name}': {defines!r}")
            return None
        return None
