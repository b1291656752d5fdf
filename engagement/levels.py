"""
Activity-kind specializations: potential cognitive depth / social breadth
levels and the event kinds that count as acting on feedback.
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence

from .exceptions import ConfigurationError
from .models import (
    ActivityInstance,
    FEEDBACK_ACTIONS,
    FEEDBACK_REPLIED,
    FEEDBACK_SUBMITTED,
    FEEDBACK_VIEWED,
    INDICATOR_COGNITIVE,
    INDICATOR_KINDS,
    MAX_COGNITIVE_LEVEL,
    MAX_SOCIAL_LEVEL,
)

logger = logging.getLogger(__name__)


class LevelResolver:
    """
    Base for activity kinds.

    Subclasses set ``activity_type`` and either the ``cognitive_depth`` /
    ``social_breadth`` class attributes or override the matching
    ``potential_*_level`` method when the level depends on the instance.
    """

    activity_type: str = ""
    cognitive_depth: Optional[int] = None
    social_breadth: Optional[int] = None
    feedback_check_grades: bool = True
    feedback_events: Mapping[str, Sequence[str]] = {}

    def potential_cognitive_level(self, instance: ActivityInstance) -> int:
        if self.cognitive_depth is None:
            raise ConfigurationError(
                f"{type(self).__name__} must set cognitive_depth or override "
                f"potential_cognitive_level"
            )
        return self.cognitive_depth

    def potential_social_level(self, instance: ActivityInstance) -> int:
        if self.social_breadth is None:
            raise ConfigurationError(
                f"{type(self).__name__} must set social_breadth or override "
                f"potential_social_level"
            )
        return self.social_breadth

    def feedback_event_kinds(self, action: str) -> List[str]:
        if action not in FEEDBACK_ACTIONS:
            raise ConfigurationError(f'Provided action "{action}" is not valid.')
        kinds = self.feedback_events.get(action)
        if not kinds:
            raise ConfigurationError(
                f"Activities with a potential level that includes {action} feedback "
                f"must define feedback events for '{action}' ({self.activity_type or type(self).__name__})"
            )
        return list(kinds)


class ConfiguredLevelResolver(LevelResolver):
    """Resolver built from an ``activity_kinds`` entry of the YAML config."""

    def __init__(
        self,
        activity_type: str,
        cognitive_depth: Optional[int] = None,
        social_breadth: Optional[int] = None,
        feedback_check_grades: bool = True,
        feedback_events: Optional[Mapping[str, Sequence[str]]] = None,
    ):
        self.activity_type = activity_type
        self.cognitive_depth = cognitive_depth
        self.social_breadth = social_breadth
        self.feedback_check_grades = feedback_check_grades
        self.feedback_events = {k: list(v) for k, v in (feedback_events or {}).items()}

    def __repr__(self) -> str:
        return (
            f"ConfiguredLevelResolver({self.activity_type!r}, cognitive_depth={self.cognitive_depth}, "
            f"social_breadth={self.social_breadth})"
        )


def required_feedback_actions(indicator_kind: str, level: int) -> List[str]:
    """Feedback actions a potential level can reach down the ladder."""
    if indicator_kind == INDICATOR_COGNITIVE:
        ladder = {3: FEEDBACK_VIEWED, 4: FEEDBACK_REPLIED, 5: FEEDBACK_SUBMITTED}
        return [ladder[lvl] for lvl in sorted(ladder) if lvl <= level]
    if level >= 2:
        return [FEEDBACK_VIEWED]
    return []


def check_level(indicator_kind: str, level) -> int:
    """Raise if ``level`` is not an int within the kind's range."""
    upper = MAX_COGNITIVE_LEVEL if indicator_kind == INDICATOR_COGNITIVE else MAX_SOCIAL_LEVEL
    label = "cognitive depth" if indicator_kind == INDICATOR_COGNITIVE else "social breadth"
    if isinstance(level, bool) or not isinstance(level, int) or not 1 <= level <= upper:
        raise ConfigurationError(f"Activities' potential {label} go from 1 to {upper} (got {level!r}).")
    return level


def _overrides(resolver: LevelResolver, method: str) -> bool:
    return getattr(type(resolver), method) is not getattr(LevelResolver, method)


def validate_resolver(resolver: LevelResolver, indicator_kind: str) -> None:
    """
    Composition-time checks. Levels that depend on the instance are
    checked again when scoring.
    """
    if indicator_kind not in INDICATOR_KINDS:
        raise ConfigurationError(f"Indicator type '{indicator_kind}' is invalid.")
    if not isinstance(resolver, LevelResolver):
        raise ConfigurationError(f"{resolver!r} is not a LevelResolver")
    if not resolver.activity_type:
        raise ConfigurationError(f"{type(resolver).__name__} does not declare an activity type")

    if indicator_kind == INDICATOR_COGNITIVE:
        attr, method = "cognitive_depth", "potential_cognitive_level"
    else:
        attr, method = "social_breadth", "potential_social_level"

    level = getattr(resolver, attr)
    if _overrides(resolver, method):
        logger.debug(f"{resolver.activity_type}: {indicator_kind} level resolved per instance")
        return
    if level is None:
        raise ConfigurationError(
            f"{resolver.activity_type} must set {attr} or override {method}"
        )
    check_level(indicator_kind, level)

    for action in required_feedback_actions(indicator_kind, level):
        resolver.feedback_event_kinds(action)


def resolver_registry(resolvers: List[LevelResolver]) -> Dict[str, LevelResolver]:
    registry: Dict[str, LevelResolver] = {}
    for resolver in resolvers:
        if not resolver.activity_type:
            raise ConfigurationError(f"{type(resolver).__name__} does not declare an activity type")
        registry[resolver.activity_type] = resolver
    return registry
