"""Builders and constants shared by the test modules."""

from engagement.levels import ConfiguredLevelResolver
from engagement.models import ActivityInstance, Event, TimeWindow

COURSE = 10
ASSIGN_1 = 101
ASSIGN_2 = 102
STUDENT = 7
OTHER_STUDENT = 8
GRADED_AT = 1000
WINDOW = TimeWindow(0, 10_000)

VIEWED = "\\mod_assign\\event\\feedback_viewed"
REPLIED = "\\assignsubmission_comments\\event\\comment_created"
SUBMITTED = "\\mod_assign\\event\\assessable_submitted"
MODULE_VIEWED = "\\mod_assign\\event\\course_module_viewed"
SUBMISSION_CREATED = "\\mod_assign\\event\\submission_created"

FEEDBACK_EVENTS = {"viewed": [VIEWED], "replied": [REPLIED], "submitted": [SUBMITTED]}


def ev(context_id, user_id, kind, timestamp, crud="r", **kw):
    return Event(context_id=context_id, user_id=user_id, kind=kind, crud=crud, timestamp=timestamp, **kw)


def activity(context_id, kind="assign", **settings):
    return ActivityInstance(
        context_id=context_id, instance_id=context_id - 100, kind=kind,
        course_id=COURSE, name=f"{kind} {context_id}", settings=settings,
    )


def assign_resolver(cognitive_depth=5, social_breadth=2, check_grades=True):
    return ConfiguredLevelResolver(
        "assign",
        cognitive_depth=cognitive_depth,
        social_breadth=social_breadth,
        feedback_check_grades=check_grades,
        feedback_events=FEEDBACK_EVENTS,
    )


# Events that satisfy each cognitive level for STUDENT in ASSIGN_1
LEVEL_EVENTS = {
    1: ev(ASSIGN_1, STUDENT, MODULE_VIEWED, 500),
    2: ev(ASSIGN_1, STUDENT, SUBMISSION_CREATED, 600, crud="c"),
    3: ev(ASSIGN_1, STUDENT, VIEWED, 1100),
    4: ev(ASSIGN_1, STUDENT, REPLIED, 1200, crud="c"),
    5: ev(ASSIGN_1, STUDENT, SUBMITTED, 1300, crud="c"),
}
