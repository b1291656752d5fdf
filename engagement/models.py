"""
Value objects shared by the log index, grade lookup and scorer.
Timestamps are integer epoch seconds throughout.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

MIN_VALUE = -1.0
MAX_VALUE = 1.0

MAX_COGNITIVE_LEVEL = 5
MAX_SOCIAL_LEVEL = 5

INDICATOR_COGNITIVE = "cognitive"
INDICATOR_SOCIAL = "social"
INDICATOR_KINDS = (INDICATOR_COGNITIVE, INDICATOR_SOCIAL)

FEEDBACK_VIEWED = "viewed"
FEEDBACK_REPLIED = "replied"
FEEDBACK_SUBMITTED = "submitted"
FEEDBACK_ACTIONS = (FEEDBACK_VIEWED, FEEDBACK_REPLIED, FEEDBACK_SUBMITTED)

CRUD_CREATE = "c"
CRUD_READ = "r"
CRUD_UPDATE = "u"
CRUD_DELETE = "d"
WRITE_CRUD = (CRUD_CREATE, CRUD_UPDATE)

# Fields that change between two occurrences of the same event kind
VOLATILE_EVENT_FIELDS = ("event_id", "anonymous", "related_user_id", "other", "origin", "ip")


@dataclass(frozen=True)
class Event:
    """One logged action. Immutable once logged."""

    context_id: int
    user_id: int
    kind: str
    crud: str
    timestamp: int
    course_id: Optional[int] = None
    component: str = ""
    action: str = ""
    target: str = ""
    event_id: Optional[Any] = None
    related_user_id: Optional[int] = None
    anonymous: bool = False
    origin: str = ""
    ip: str = ""
    other: Optional[Dict[str, Any]] = None

    def normalized(self) -> Dict[str, Any]:
        """Event data without the per-occurrence fields."""
        return {
            "context_id": self.context_id,
            "user_id": self.user_id,
            "kind": self.kind,
            "crud": self.crud,
            "course_id": self.course_id,
            "component": self.component,
            "action": self.action,
            "target": self.target,
        }


@dataclass(frozen=True)
class GradeItem:
    item_id: Any
    grade: Optional[float] = None
    feedback: Optional[str] = None
    date_graded: Optional[int] = None


@dataclass(frozen=True)
class ActivityInstance:
    """A course module instance as seen by the scorer."""

    context_id: int
    instance_id: int
    kind: str
    course_id: int
    name: str = ""
    settings: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class TimeWindow:
    """Analysis period. Matches ``start < ts <= end``; a None bound is open."""

    start: Optional[int] = None
    end: Optional[int] = None


@dataclass(frozen=True)
class Sample:
    """
    An evaluation request.

    ``user_id`` None means any user. ``activity`` None means the whole course.
    """

    sample_id: Any
    course_id: int
    user_id: Optional[int] = None
    activity: Optional[ActivityInstance] = None
