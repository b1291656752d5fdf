import pytest

from engagement.exceptions import ConfigurationError
from engagement.levels import LevelResolver
from engagement.models import Sample, TimeWindow
from engagement.scorer import EngagementScorer, scorer_for_kinds
from engagement.sources import InMemoryActivityCatalog, InMemoryEventSource

from tests.helpers import (
    ASSIGN_1,
    ASSIGN_2,
    COURSE,
    FEEDBACK_EVENTS,
    GRADED_AT,
    LEVEL_EVENTS,
    MODULE_VIEWED,
    OTHER_STUDENT,
    STUDENT,
    VIEWED,
    WINDOW,
    activity,
    assign_resolver,
    ev,
)


def _events(*levels):
    return [LEVEL_EVENTS[level] for level in levels]


@pytest.mark.parametrize("count", range(1, 8))
def test_activity_shares_add_up_to_the_whole_range(make_scorer, count):
    scorer = make_scorer()

    assert sum(scorer.score_per_activity(count) for _ in range(count)) == pytest.approx(2.0)


def test_two_activities_get_one_point_each(make_scorer):
    assert make_scorer().score_per_activity(2) == pytest.approx(1.0)


@pytest.mark.parametrize(
    "potential, levels, reached",
    [
        (5, (1, 2, 3, 4, 5), 5),
        (5, (1, 2, 3, 4), 4),
        (5, (1, 3), 3),
        (5, (1, 2), 2),
        (5, (1,), 1),
        (5, (), 0),
        (4, (1, 2, 3, 4, 5), 4),
        (4, (5,), 2),
        (3, (1, 2, 3, 4, 5), 3),
        (2, (3,), 1),
        (1, (1, 2, 3, 4, 5), 1),
    ],
)
def test_cognitive_level_falls_through_from_the_potential_level(make_scorer, student_sample, potential, levels, reached):
    scorer = make_scorer(_events(*levels), resolver=assign_resolver(cognitive_depth=potential))

    score = scorer.cognitive_score(student_sample, WINDOW)

    assert scorer.cognitive_level_reached(student_sample.activity, ASSIGN_1, STUDENT, potential) == reached
    assert score == pytest.approx(-1.0 + 2.0 / potential * reached)


def test_write_log_alone_reaches_level_two_of_five(make_scorer, student_sample):
    scorer = make_scorer(_events(2))

    assert scorer.cognitive_score(student_sample, WINDOW) == pytest.approx(-1.0 + 2.0 / 5 * 2)


def test_submission_after_feedback_reaches_full_score(make_scorer, student_sample):
    scorer = make_scorer(_events(5))

    assert scorer.cognitive_score(student_sample, WINDOW) == pytest.approx(1.0)


def test_only_viewing_feedback_reaches_level_three(make_scorer, student_sample):
    scorer = make_scorer(_events(3))
    scorer.load(COURSE, WINDOW)

    assert scorer.cognitive_level_reached(student_sample.activity, ASSIGN_1, STUDENT, 5) == 3
    assert scorer.cognitive_score(student_sample, WINDOW) == pytest.approx(-1.0 + 2.0 / 5 * 3)


def test_feedback_viewed_before_grading_falls_back_to_access(make_scorer, student_sample):
    scorer = make_scorer([ev(ASSIGN_1, STUDENT, VIEWED, GRADED_AT - 1)])
    scorer.load(COURSE, WINDOW)

    assert scorer.cognitive_level_reached(student_sample.activity, ASSIGN_1, STUDENT, 5) == 1


@pytest.mark.parametrize("potential", [2, 3, 4, 5])
def test_social_breadth_never_goes_beyond_level_two(make_scorer, student_sample, potential):
    scorer = make_scorer(_events(1, 2, 3, 4, 5), resolver=assign_resolver(social_breadth=potential), kind="social")
    scorer.load(COURSE, WINDOW)

    assert scorer.social_level_reached(student_sample.activity, ASSIGN_1, STUDENT, potential) == 2
    assert scorer.calculate_sample(student_sample, WINDOW) == pytest.approx(-1.0 + 2.0 / potential * 2)


def test_social_breadth_falls_back_to_access(make_scorer, student_sample):
    scorer = make_scorer(_events(1, 2), resolver=assign_resolver(social_breadth=3), kind="social")
    scorer.load(COURSE, WINDOW)

    assert scorer.social_level_reached(student_sample.activity, ASSIGN_1, STUDENT, 3) == 1
    assert scorer.social_score(student_sample, WINDOW) == pytest.approx(-1.0 + 2.0 / 3)


def test_social_breadth_level_one(make_scorer, student_sample):
    scorer = make_scorer(_events(1, 3), resolver=assign_resolver(social_breadth=1), kind="social")

    assert scorer.social_score(student_sample, WINDOW) == pytest.approx(1.0)


def test_course_sample_splits_the_range_across_activities(make_scorer):
    scorer = make_scorer(_events(1, 2, 3, 4, 5))
    sample = Sample("course", COURSE, user_id=STUDENT)

    # Full marks on ASSIGN_1, nothing on ASSIGN_2
    assert scorer.calculate_sample(sample, WINDOW) == pytest.approx(0.0)


def test_sample_without_user_counts_anyone(make_scorer):
    scorer = make_scorer([ev(ASSIGN_1, OTHER_STUDENT, MODULE_VIEWED, 50), ev(ASSIGN_2, STUDENT, MODULE_VIEWED, 60)])

    # Level 1 of 5 on both activities
    assert scorer.calculate_sample(Sample("course", COURSE), WINDOW) == pytest.approx(-1.0 + 2 * (1.0 / 5))


def test_score_is_clamped_to_the_range(make_scorer, student_sample, monkeypatch):
    scorer = make_scorer(_events(5))
    monkeypatch.setattr(scorer, "score_per_activity", lambda count: 10.0)

    assert scorer.calculate_sample(student_sample, WINDOW) == 1.0


def test_three_way_split_stays_within_range(make_scorer, catalog):
    catalog.add(activity(103))
    events = [LEVEL_EVENTS[5]] + [ev(ctx, STUDENT, "\\mod_assign\\event\\submission_created", 600, crud="c") for ctx in (102, 103)]
    scorer = make_scorer(events, resolver=assign_resolver(cognitive_depth=5))

    score = scorer.calculate_sample(Sample("course", COURSE, user_id=STUDENT), WINDOW)

    assert -1.0 <= score <= 1.0
    assert score == pytest.approx(-1.0 + 2.0 / 3 + 2 * (2.0 / 3 / 5 * 2))


def test_custom_range(make_scorer, student_sample):
    scorer = make_scorer(_events(5), min_value=0.0, max_value=100.0)

    assert scorer.calculate_sample(student_sample, WINDOW) == pytest.approx(100.0)


def test_course_without_activities_is_not_applicable(make_scorer):
    scorer = make_scorer(_events(5), activities=InMemoryActivityCatalog())

    result = scorer.calculate_sample(Sample("course", COURSE, user_id=STUDENT), WINDOW)

    assert result is None


def test_no_activity_in_window_is_not_applicable(make_scorer):
    catalog = InMemoryActivityCatalog([activity(ASSIGN_1, timeopen=50_000)])
    scorer = make_scorer(_events(5), activities=catalog)

    assert scorer.calculate_sample(Sample("course", COURSE, user_id=STUDENT), WINDOW) is None


def test_zero_score_is_not_confused_with_not_applicable(make_scorer):
    scorer = make_scorer(_events(1, 2, 3, 4, 5))

    assert scorer.calculate_sample(Sample("course", COURSE, user_id=STUDENT), WINDOW) == 0.0


def test_log_index_is_built_once_per_scope(catalog, grades):
    events = InMemoryEventSource(_events(1, 2))
    scorer = EngagementScorer(assign_resolver(), "cognitive", catalog, events, grades)

    for user in (STUDENT, OTHER_STUDENT, None):
        scorer.calculate_sample(Sample(user, COURSE, user_id=user), WINDOW)
    assert events.queries == 1

    scorer.calculate_sample(Sample("later", COURSE, user_id=STUDENT), TimeWindow(0, 20_000))
    assert events.queries == 2


def test_grades_are_filled_once_per_analysable(make_scorer, grades, student_sample, monkeypatch):
    calls = []
    grades_for = grades.grades_for

    def counting_grades_for(course_id, activities):
        calls.append(course_id)
        return grades_for(course_id, activities)

    monkeypatch.setattr(grades, "grades_for", counting_grades_for)
    scorer = make_scorer(_events(3))

    scorer.fill_per_analysable_caches(COURSE)
    assert calls == [COURSE]

    # Level 3 needs the graded date from the prefetched grades
    assert scorer.calculate_sample(student_sample, WINDOW) == pytest.approx(-1.0 + 2.0 / 5 * 3)
    assert scorer.calculate_sample(Sample("other", COURSE, user_id=OTHER_STUDENT), WINDOW) == pytest.approx(-1.0)
    assert calls == [COURSE]


def test_scorers_of_both_kinds_share_the_cache(catalog, grades):
    events = InMemoryEventSource(_events(1))
    scorers = scorer_for_kinds(assign_resolver(), catalog, events, grades)
    sample = Sample("s", COURSE, user_id=STUDENT)

    scorers["cognitive"].calculate_sample(sample, WINDOW)
    scorers["social"].calculate_sample(sample, WINDOW)

    assert events.queries == 1


def test_calculate_and_summarize(make_scorer):
    scorer = make_scorer(_events(1, 2, 3, 4, 5), activities=InMemoryActivityCatalog([activity(ASSIGN_1)]))
    samples = [Sample(u, COURSE, user_id=u) for u in (STUDENT, OTHER_STUDENT)]

    results = scorer.calculate(samples, WINDOW)
    assert results == {STUDENT: pytest.approx(1.0), OTHER_STUDENT: pytest.approx(-1.0)}

    summary = scorer.summarize(results, prev_results={STUDENT: 0.5, OTHER_STUDENT: -0.5, 9: None})
    assert summary["value"] == pytest.approx(0.0)
    assert summary["trend"] is None
    assert summary["chart_data"]["y"] == [pytest.approx(1.0), pytest.approx(-1.0)]
    assert "0 not applicable" in summary["details"]


def test_summary_trend_and_not_applicable():
    scorer = EngagementScorer(assign_resolver(), "cognitive", None, None, None)

    summary = scorer.summarize({1: 0.5, 2: None}, prev_results={1: 0.25})

    assert summary["value"] == 0.5
    assert summary["trend"] == 100.0
    assert "1 not applicable" in summary["details"]
    assert scorer.summarize({1: None})["value"] is None


def test_required_sample_data_is_only_the_course():
    assert EngagementScorer.required_sample_data() == ("course",)


def test_missing_log_store_surfaces_on_first_sample(catalog, grades, student_sample):
    scorer = EngagementScorer(assign_resolver(), "cognitive", catalog, None, grades)

    with pytest.raises(ConfigurationError, match="No log store"):
        scorer.calculate_sample(student_sample, WINDOW)


def test_invalid_indicator_kind(make_scorer, student_sample):
    with pytest.raises(ConfigurationError, match="invalid"):
        make_scorer(kind="emotional")

    scorer = make_scorer(_events(1))
    scorer.indicator_kind = "emotional"
    with pytest.raises(ConfigurationError, match="invalid"):
        scorer.calculate_sample(student_sample, WINDOW)


def test_min_value_must_be_below_max_value(make_scorer):
    with pytest.raises(ConfigurationError):
        make_scorer(min_value=1.0, max_value=1.0)


class PerInstanceResolver(LevelResolver):
    activity_type = "assign"
    feedback_events = FEEDBACK_EVENTS

    def potential_cognitive_level(self, instance):
        return instance.settings["level"]


@pytest.mark.parametrize("level", [0, 6, "3", 2.0, True])
def test_out_of_range_potential_level_is_fatal(make_scorer, level):
    scorer = make_scorer(_events(1), resolver=PerInstanceResolver())
    sample = Sample("s", COURSE, user_id=STUDENT, activity=activity(ASSIGN_1, level=level))

    with pytest.raises(ConfigurationError, match="cognitive depth"):
        scorer.calculate_sample(sample, WINDOW)


def test_per_instance_potential_level(make_scorer):
    scorer = make_scorer(_events(1, 2), resolver=PerInstanceResolver())
    sample = Sample("s", COURSE, user_id=STUDENT, activity=activity(ASSIGN_1, level=2))

    assert scorer.calculate_sample(sample, WINDOW) == pytest.approx(1.0)


def test_missing_feedback_mapping_for_per_instance_level_fails_when_reached(make_scorer):
    class NoFeedback(PerInstanceResolver):
        feedback_events = {}

    scorer = make_scorer(_events(1), resolver=NoFeedback())
    sample = Sample("s", COURSE, user_id=STUDENT, activity=activity(ASSIGN_1, level=3))

    with pytest.raises(ConfigurationError, match="viewed"):
        scorer.calculate_sample(sample, WINDOW)
