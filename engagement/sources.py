"""
Host platform collaborators: activity enumeration, event log and grades.

The base classes describe what the scorer reads. The in-memory versions
back the test suite and hosts that already hold their data in memory.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from .models import ActivityInstance, Event, GradeItem

logger = logging.getLogger(__name__)

GradeMap = Dict[int, Dict[int, Dict[object, GradeItem]]]


class ActivityCatalog:
    def list_activities(self, course_id: int, kind: str) -> List[ActivityInstance]:
        raise NotImplementedError

    def list_activities_in_window(
        self, course_id: int, kind: str,
        start: Optional[int], end: Optional[int],
        user_id: Optional[int] = None,
    ) -> List[ActivityInstance]:
        raise NotImplementedError


class EventLogSource:
    def query_events(
        self, context_ids: Iterable[int], start: Optional[int], end: Optional[int],
    ) -> Iterable[Event]:
        """Events in the given contexts with ``start < timestamp <= end``, oldest first."""
        raise NotImplementedError


class GradeSource:
    def grades_for(self, course_id: int, activities: List[ActivityInstance]) -> GradeMap:
        """Grade items keyed by context id, then user id, then grade item id."""
        raise NotImplementedError


class InMemoryActivityCatalog(ActivityCatalog):
    """
    Activities held in a list. An activity belongs to a window when its
    optional ``timeopen``/``timeclose`` settings overlap it. ``visible_to``
    (a collection of user ids) restricts who can see an activity.
    """

    def __init__(self, activities: Optional[List[ActivityInstance]] = None):
        self.activities: List[ActivityInstance] = list(activities or [])

    def add(self, activity: ActivityInstance) -> None:
        self.activities.append(activity)

    def list_activities(self, course_id: int, kind: str) -> List[ActivityInstance]:
        return [a for a in self.activities if a.course_id == course_id and a.kind == kind]

    def list_activities_in_window(self, course_id, kind, start, end, user_id=None):
        found = []
        for activity in self.list_activities(course_id, kind):
            opens = activity.settings.get("timeopen")
            closes = activity.settings.get("timeclose")
            if end is not None and opens is not None and opens > end:
                continue
            if start is not None and closes is not None and closes <= start:
                continue
            visible_to = activity.settings.get("visible_to")
            if user_id is not None and visible_to is not None and user_id not in visible_to:
                continue
            found.append(activity)
        return found


class InMemoryEventSource(EventLogSource):
    def __init__(self, events: Optional[Iterable[Event]] = None):
        self.events: List[Event] = list(events or [])
        self.queries = 0

    def add(self, event: Event) -> None:
        self.events.append(event)

    def query_events(self, context_ids, start, end):
        self.queries += 1
        wanted = set(context_ids)
        matched = [
            e for e in self.events
            if e.context_id in wanted
            and (start is None or e.timestamp > start)
            and (end is None or e.timestamp <= end)
        ]
        matched.sort(key=lambda e: e.timestamp)
        logger.debug(f"In-memory query: {len(matched)} of {len(self.events)} events matched")
        return matched


class InMemoryGradeSource(GradeSource):
    def __init__(self):
        self._grades: GradeMap = defaultdict(lambda: defaultdict(dict))

    def add(self, context_id: int, user_id: int, item: GradeItem) -> None:
        self._grades[context_id][user_id][item.item_id] = item

    def grades_for(self, course_id, activities):
        wanted = {a.context_id for a in activities if a.course_id == course_id}
        return {
            context_id: {user_id: dict(items) for user_id, items in users.items()}
            for context_id, users in self._grades.items()
            if context_id in wanted
        }
