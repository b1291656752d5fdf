"""Grade lookup over the grade items of one course."""

import logging
from typing import Dict, Optional

from .models import GradeItem

logger = logging.getLogger(__name__)


class GradeBook:
    """Grade items keyed by context id, then user id, then grade item id."""

    def __init__(self, grades: Optional[Dict] = None):
        self._grades: Dict = grades or {}

    def __len__(self) -> int:
        return len(self._grades)

    def has_grades(self, context_id) -> bool:
        return bool(self._grades.get(context_id))

    def items(self, context_id, user_id) -> Dict[object, GradeItem]:
        return self._grades.get(context_id, {}).get(user_id, {})

    def graded_date(self, context_id, user_id, check_feedback: bool = False) -> Optional[int]:
        """
        Earliest date the user was graded in this context.

        Items count when they carry a grade, or feedback if ``check_feedback``
        is set. None when no item qualifies.
        """
        earliest = None
        for item in self.items(context_id, user_id).values():
            qualifies = item.grade is not None or (check_feedback and item.feedback is not None)
            if not qualifies or not item.date_graded:
                continue
            if earliest is None or item.date_graded < earliest:
                earliest = item.date_graded
        return earliest
