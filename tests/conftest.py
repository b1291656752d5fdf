import pytest

from engagement.models import GradeItem, Sample
from engagement.scorer import EngagementScorer
from engagement.sources import InMemoryActivityCatalog, InMemoryEventSource, InMemoryGradeSource

from tests.helpers import ASSIGN_1, ASSIGN_2, COURSE, GRADED_AT, STUDENT, activity, assign_resolver


@pytest.fixture
def catalog():
    return InMemoryActivityCatalog([activity(ASSIGN_1), activity(ASSIGN_2)])


@pytest.fixture
def grades():
    source = InMemoryGradeSource()
    source.add(ASSIGN_1, STUDENT, GradeItem(item_id=1, grade=80.0, date_graded=GRADED_AT))
    return source


@pytest.fixture
def make_scorer(catalog, grades):
    def _make(events=(), resolver=None, kind="cognitive", activities=None, grade_source=None, **kw):
        return EngagementScorer(
            resolver or assign_resolver(),
            kind,
            activities or catalog,
            InMemoryEventSource(events),
            grade_source or grades,
            **kw,
        )
    return _make


@pytest.fixture
def student_sample():
    return Sample(sample_id="s1", course_id=COURSE, user_id=STUDENT, activity=activity(ASSIGN_1))
