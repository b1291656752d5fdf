"""
Community of inquiry engagement indicators.

Scores how deep (cognitive) or how broad (social) a student's engagement with
one activity kind was during an analysis period. Each activity of the kind
gets an equal share of the score range; within an activity the share is
split across its potential levels and the student earns the highest level
reached.

Levels:

    cognitive  1 any log   2 write log   3 viewed feedback
               4 replied to feedback     5 submitted after feedback
    social     1 any log   2 viewed feedback (potential levels 3-5 behave as 2)
"""

import logging
from statistics import mean
from typing import Callable, Dict, Iterable, List, Optional

import numpy as np

from .cache import ScopeCache
from .exceptions import ConfigurationError
from .grades import GradeBook
from .levels import LevelResolver, check_level, validate_resolver
from .log_index import LogIndex, build_log_index
from .models import (
    ActivityInstance,
    FEEDBACK_ACTIONS,
    FEEDBACK_REPLIED,
    FEEDBACK_SUBMITTED,
    FEEDBACK_VIEWED,
    INDICATOR_COGNITIVE,
    INDICATOR_KINDS,
    INDICATOR_SOCIAL,
    MAX_VALUE,
    MIN_VALUE,
    Sample,
    TimeWindow,
)

logger = logging.getLogger(__name__)

# Highest social breadth level core activities can currently reach
SOCIAL_LEVEL_CAP = 2


class EngagementScorer:
    """
    Cognitive depth or social breadth indicator for one activity kind.

    Use one instance per analysable unit (course) and evaluate its samples
    serially: the log index and grades are fetched once per scope and reused.
    The level predicates read the scope last passed to ``load`` (scoring a
    sample loads its own). ``calculate_sample`` returns None when no activity
    applies to the sample.
    """

    REQUIRED_SAMPLE_DATA = ("course",)

    def __init__(
        self,
        resolver: LevelResolver,
        indicator_kind: str,
        activities,
        events,
        grades,
        min_value: float = MIN_VALUE,
        max_value: float = MAX_VALUE,
        cache: Optional[ScopeCache] = None,
    ):
        validate_resolver(resolver, indicator_kind)
        if not min_value < max_value:
            raise ConfigurationError(f"min_value ({min_value}) must be lower than max_value ({max_value})")
        self.resolver = resolver
        self.indicator_kind = indicator_kind
        self.activities = activities
        self.events = events
        self.grade_source = grades
        self.min_value = float(min_value)
        self.max_value = float(max_value)
        self.cache = cache if cache is not None else ScopeCache()

        self._logs: Optional[LogIndex] = None
        self._gradebook: Optional[GradeBook] = None

    def __repr__(self) -> str:
        return f"EngagementScorer({self.activity_type!r}, {self.indicator_kind!r})"

    @property
    def activity_type(self) -> str:
        return self.resolver.activity_type

    @classmethod
    def required_sample_data(cls) -> tuple:
        # Only the course: the indicator is valid even without students.
        return cls.REQUIRED_SAMPLE_DATA

    # ─────────────────────────────────────────────
    # PER-ANALYSABLE CACHES
    # ─────────────────────────────────────────────

    def fill_per_analysable_caches(self, course_id) -> None:
        self._gradebook = self._grades_for(course_id)

    def _grades_for(self, course_id) -> GradeBook:
        key = ScopeCache.make_key("grades", course=course_id, kind=self.activity_type)
        return self.cache.cached(key, self._fetch_grades, course_id)

    def _fetch_grades(self, course_id) -> GradeBook:
        course_activities = self.activities.list_activities(course_id, self.activity_type)
        gradebook = GradeBook(self.grade_source.grades_for(course_id, course_activities))
        logger.info(f"Grades loaded for course {course_id}: {len(gradebook)} {self.activity_type} contexts")
        return gradebook

    def _logs_for(self, course_id, window: TimeWindow) -> Optional[LogIndex]:
        key = ScopeCache.make_key(
            "logs", course=course_id, kind=self.activity_type, start=window.start, end=window.end,
        )
        return self.cache.cached(key, self._fetch_logs, course_id, window)

    def _fetch_logs(self, course_id, window: TimeWindow) -> Optional[LogIndex]:
        # All activity logs of the course, not only the sample's, so every sample shares them.
        course_activities = self.activities.list_activities(course_id, self.activity_type)
        if not course_activities:
            logger.warning(f"No {self.activity_type} activities in course {course_id}")
            return None
        return build_log_index(self.events, course_activities, window)

    def load(self, course_id, window: TimeWindow) -> Optional[LogIndex]:
        """
        Make ``course_id`` and ``window`` the scope the predicates read.

        Returns the log index, or None when the course has no activity of
        this kind (the scope is then loaded but empty).
        """
        logs = self._logs_for(course_id, window)
        self._logs = logs if logs is not None else LogIndex({}, window)
        self._gradebook = self._grades_for(course_id)
        return logs

    def _require_scope(self) -> None:
        if self._logs is None or self._gradebook is None:
            raise RuntimeError(f"{self!r} has no analysable scope loaded; call load(course_id, window) first")

    def student_activities(self, sample: Sample, window: TimeWindow) -> Optional[Dict[object, ActivityInstance]]:
        """Activities the sample covers, keyed by context id. None if there are none."""
        if self.load(sample.course_id, window) is None:
            return None

        if sample.activity is not None:
            return {sample.activity.context_id: sample.activity}

        found = self.activities.list_activities_in_window(
            sample.course_id, self.activity_type, window.start, window.end, sample.user_id,
        )
        return {a.context_id: a for a in found} or None

    # ─────────────────────────────────────────────
    # LEVEL PREDICATES
    # ─────────────────────────────────────────────

    def _users(self, context_id, user_id) -> List:
        if user_id is None:
            return self._logs.users(context_id)
        return [user_id] if self._logs.has_user(context_id, user_id) else []

    def any_log(self, context_id, user_id=None) -> bool:
        """Someone (or ``user_id``) interacted with the activity."""
        self._require_scope()
        if not self._logs.has_context(context_id):
            return False
        return user_id is None or self._logs.has_user(context_id, user_id)

    def any_write_log(self, context_id, user_id=None) -> bool:
        self._require_scope()
        for uid in self._users(context_id, user_id):
            if any(entry.is_write for entry in self._logs.kinds(context_id, uid).values()):
                return True
        return False

    def any_feedback(self, action: str, activity: ActivityInstance, context_id, user_id=None) -> bool:
        """Did anyone (or ``user_id``) view, reply to or submit after feedback?"""
        if action not in FEEDBACK_ACTIONS:
            raise ConfigurationError(f'Provided action "{action}" is not valid.')

        self._require_scope()
        if not self._logs.has_context(context_id):
            return False
        if self.resolver.feedback_check_grades and not self._gradebook.has_grades(context_id):
            # No grades, no feedback.
            return False

        check = getattr(self, f"feedback_{action}")
        return any(check(activity, context_id, uid) for uid in self._users(context_id, user_id))

    def feedback_viewed(self, activity, context_id, user_id, after=None) -> bool:
        kinds = self.resolver.feedback_event_kinds(FEEDBACK_VIEWED)
        return self.feedback_post_action(activity, context_id, user_id, kinds, after)

    def feedback_replied(self, activity, context_id, user_id, after=None) -> bool:
        kinds = self.resolver.feedback_event_kinds(FEEDBACK_REPLIED)
        return self.feedback_post_action(activity, context_id, user_id, kinds, after)

    def feedback_submitted(self, activity, context_id, user_id, after=None) -> bool:
        kinds = self.resolver.feedback_event_kinds(FEEDBACK_SUBMITTED)
        return self.feedback_post_action(activity, context_id, user_id, kinds, after)

    def feedback_post_action(
        self, activity, context_id, user_id, event_kinds: Iterable[str], after=None,
    ) -> bool:
        """
        Whether the user did any of ``event_kinds`` in this context.

        ``after`` None defaults to the graded date (or to no time filter when
        the activity kind does not check grades); 0/False ignores time; any
        other value requires an occurrence strictly later than it.
        """
        self._require_scope()
        if after is None:
            if self.resolver.feedback_check_grades:
                after = self._gradebook.graded_date(context_id, user_id)
                if not after:
                    return False
            else:
                after = False

        if not self._logs.has_user(context_id, user_id):
            return False

        for kind in event_kinds:
            entry = self._logs.entry(context_id, user_id, kind)
            if entry is None:
                continue
            if not after or entry.any_after(after):
                return True
        return False

    # ─────────────────────────────────────────────
    # LEVEL LADDERS
    # ─────────────────────────────────────────────

    def cognitive_level_reached(self, activity, context_id, user_id, potential: int) -> int:
        """Highest level <= ``potential`` whose condition holds, 0 if none."""
        checks: Dict[int, Callable[[], bool]] = {
            5: lambda: self.any_feedback(FEEDBACK_SUBMITTED, activity, context_id, user_id),
            4: lambda: self.any_feedback(FEEDBACK_REPLIED, activity, context_id, user_id),
            3: lambda: self.any_feedback(FEEDBACK_VIEWED, activity, context_id, user_id),
            2: lambda: self.any_write_log(context_id, user_id),
            1: lambda: self.any_log(context_id, user_id),
        }
        for level in range(potential, 0, -1):
            if checks[level]():
                return level
        return 0

    def social_level_reached(self, activity, context_id, user_id, potential: int) -> int:
        checks: Dict[int, Callable[[], bool]] = {
            2: lambda: self.any_feedback(FEEDBACK_VIEWED, activity, context_id, user_id),
            1: lambda: self.any_log(context_id, user_id),
        }
        for level in range(min(potential, SOCIAL_LEVEL_CAP), 0, -1):
            if checks[level]():
                return level
        return 0

    # ─────────────────────────────────────────────
    # SCORES
    # ─────────────────────────────────────────────

    def _clamp(self, score: float) -> float:
        return float(np.clip(score, self.min_value, self.max_value))

    def score_per_activity(self, activity_count: int) -> float:
        return (self.max_value - self.min_value) / activity_count

    def _score(self, sample: Sample, window: Optional[TimeWindow], indicator_kind: str) -> Optional[float]:
        window = window or TimeWindow()
        user_activities = self.student_activities(sample, window)
        if not user_activities:
            return None

        if indicator_kind == INDICATOR_COGNITIVE:
            potential_of, reached_of = self.resolver.potential_cognitive_level, self.cognitive_level_reached
        else:
            potential_of, reached_of = self.resolver.potential_social_level, self.social_level_reached

        per_activity = self.score_per_activity(len(user_activities))
        score = self.min_value
        for context_id, activity in user_activities.items():
            potential = check_level(indicator_kind, potential_of(activity))
            reached = reached_of(activity, context_id, sample.user_id, potential)
            logger.debug(
                f"{self.activity_type} {indicator_kind} context={context_id} user={sample.user_id}: "
                f"level {reached}/{potential}"
            )
            score += per_activity / potential * reached

        # Summation can drift outside the range.
        return self._clamp(score)

    def cognitive_score(self, sample: Sample, window: Optional[TimeWindow] = None) -> Optional[float]:
        return self._score(sample, window, INDICATOR_COGNITIVE)

    def social_score(self, sample: Sample, window: Optional[TimeWindow] = None) -> Optional[float]:
        return self._score(sample, window, INDICATOR_SOCIAL)

    def calculate_sample(self, sample: Sample, window: Optional[TimeWindow] = None) -> Optional[float]:
        if self.indicator_kind == INDICATOR_COGNITIVE:
            return self.cognitive_score(sample, window)
        if self.indicator_kind == INDICATOR_SOCIAL:
            return self.social_score(sample, window)
        raise ConfigurationError(f"Indicator type '{self.indicator_kind}' is invalid.")

    def calculate(self, samples: Iterable[Sample], window: Optional[TimeWindow] = None) -> Dict[object, Optional[float]]:
        """Score every sample of one analysable unit. None marks not applicable."""
        results = {sample.sample_id: self.calculate_sample(sample, window) for sample in samples}
        applicable = sum(1 for v in results.values() if v is not None)
        logger.info(
            f"{self.activity_type} {self.indicator_kind}: {applicable}/{len(results)} samples scored"
        )
        return results

    # ─────────────────────────────────────────────
    # SUMMARY
    # ─────────────────────────────────────────────

    def _trend(self, current: float, previous: float) -> Optional[float]:
        """Compute % change vs previous period."""
        if previous == 0:
            return None
        return round((current - previous) / abs(previous) * 100, 1)

    def summarize(
        self,
        results: Dict[object, Optional[float]],
        prev_results: Optional[Dict[object, Optional[float]]] = None,
    ) -> Dict:
        """Indicator dict with keys: value, trend, details, chart_data."""
        scores = [v for v in results.values() if v is not None]
        prev_scores = [v for v in (prev_results or {}).values() if v is not None]
        not_applicable = len(results) - len(scores)

        if not scores:
            return {
                "value": None,
                "trend": None,
                "chart_data": {},
                "details": f"No applicable samples ({not_applicable} not applicable)",
            }

        curr = round(mean(scores), 3)
        trend = self._trend(curr, round(mean(prev_scores), 3)) if prev_scores else None
        scored = {k: v for k, v in results.items() if v is not None}
        return {
            "value": curr,
            "trend": trend,
            "chart_data": {"x": [str(k) for k in scored], "y": list(scored.values())},
            "details": (
                f"Average {self.indicator_kind} score {curr:+.2f} over {len(scores)} samples"
                f" ({not_applicable} not applicable)"
            ),
        }


def scorer_for_kinds(
    resolver: LevelResolver,
    activities,
    events,
    grades,
    kinds: Iterable[str] = INDICATOR_KINDS,
    **kwargs,
) -> Dict[str, EngagementScorer]:
    """One scorer per indicator kind sharing a single cache."""
    cache = kwargs.pop("cache", None) or ScopeCache()
    return {
        kind: EngagementScorer(resolver, kind, activities, events, grades, cache=cache, **kwargs)
        for kind in kinds
    }
