"""
Tests for the screening instruments: scoring tables, tier boundaries,
submission validation and the append-only result history.
"""
from datetime import datetime, timezone

import pytest
from factories import FailingKeyValueStore, make_store, make_test_answers

from preop_guide.models import DocumentKind
from preop_guide.screening import (
    ALCOHOL,
    INSTRUMENTS,
    NO,
    NO_ANSWER_LABEL,
    SMOKING,
    SUBSTANCE,
    UNKNOWN_ANSWER_LABEL,
    YES,
    IncompleteSubmissionError,
    InvalidAnswerError,
    ScreeningTestResult,
    answer_label,
    classify,
    get_instrument,
    load_results,
    normalise_answers,
    score,
    submit_test,
    validate_answers,
)
from preop_guide.storage import GuideStore


# ─── Instrument definitions ───────────────────────────────────────────────────

class TestInstruments:
    @pytest.mark.parametrize("instrument,count,max_score", [
        (ALCOHOL, 10, 40), (SMOKING, 6, 10), (SUBSTANCE, 20, 20),
    ])
    def test_shape(self, instrument, count, max_score):
        assert len(instrument.questions) == count
        assert instrument.max_score == max_score

    @pytest.mark.parametrize("instrument", [ALCOHOL, SMOKING])
    def test_max_score_reachable(self, instrument):
        best = {q.id: max(q.values()) for q in instrument.questions}
        assert score(instrument, best) == instrument.max_score

    def test_alcohol_items_9_and_10_use_0_2_4(self):
        for qid in (9, 10):
            assert sorted(ALCOHOL.question(qid).values()) == [0, 2, 4]

    def test_results_keys(self):
        assert [i.results_key for i in INSTRUMENTS.values()] == [
            "alcohol_test_results", "smoking_test_results", "substance_test_results",
        ]

    @pytest.mark.parametrize("key,expected", [
        ("alcohol", ALCOHOL),
        ("smoking-test", SMOKING),
        (DocumentKind.SUBSTANCE_TEST, SUBSTANCE),
    ])
    def test_get_instrument(self, key, expected):
        assert get_instrument(key) is expected

    def test_get_instrument_unknown(self):
        with pytest.raises(KeyError):
            get_instrument("exercise-plan")


# ─── Scoring ──────────────────────────────────────────────────────────────────

class TestSubstanceScoring:
    def test_all_no_except_reversed_yes_scores_zero(self):
        answers = {i: NO for i in range(1, 21)}
        answers[4] = YES
        answers[5] = YES
        assert score(SUBSTANCE, answers) == 0

    def test_all_yes_scores_18(self):
        assert score(SUBSTANCE, {i: YES for i in range(1, 21)}) == 18

    def test_all_no_scores_2(self):
        assert score(SUBSTANCE, {i: NO for i in range(1, 21)}) == 2

    def test_case_insensitive_values(self):
        assert score(SUBSTANCE, {i: "Kyllä" for i in range(1, 21)}) == 18


class TestNumericScoring:
    def test_string_values_from_json(self):
        answers = {str(q.id): str(max(q.values())) for q in SMOKING.questions}
        assert score(SMOKING, answers) == 10

    def test_lowest_options_score_zero(self):
        assert score(ALCOHOL, make_test_answers(ALCOHOL)) == 0


# ─── Classification ───────────────────────────────────────────────────────────

class TestTiers:
    @pytest.mark.parametrize("total,tier", [
        (0, "controlled"), (7, "controlled"), (8, "risky"), (13, "risky"), (14, "dependence"), (40, "dependence"),
    ])
    def test_alcohol(self, total, tier):
        assert classify(ALCOHOL, total).tier == tier

    @pytest.mark.parametrize("total,tier", [
        (0, "minimal"), (3, "minimal"), (4, "moderate"), (6, "moderate"), (7, "strong"), (10, "strong"),
    ])
    def test_smoking(self, total, tier):
        assert classify(SMOKING, total).tier == tier

    @pytest.mark.parametrize("total,tier", [
        (0, "none"), (1, "consultation"), (5, "consultation"), (6, "risk_group"),
        (10, "risk_group"), (11, "significant"), (20, "significant"),
    ])
    def test_substance(self, total, tier):
        assert classify(SUBSTANCE, total).tier == tier

    def test_outcome_text(self):
        outcome = classify(SMOKING, 5)
        assert outcome.title == "Kohtalainen riippuvuus"
        assert "kohtalainen nikotiiniriippuvuus" in outcome.description


# ─── Validation ───────────────────────────────────────────────────────────────

class TestValidation:
    @pytest.mark.parametrize("instrument", [ALCOHOL, SMOKING, SUBSTANCE])
    def test_missing_answer_rejected(self, instrument):
        answers = make_test_answers(instrument, skip=(instrument.questions[-1].id,))
        with pytest.raises(IncompleteSubmissionError) as exc_info:
            validate_answers(instrument, answers)
        assert exc_info.value.missing == [instrument.questions[-1].id]

    def test_none_counts_as_missing(self):
        answers = make_test_answers(SMOKING)
        answers[2] = None
        with pytest.raises(IncompleteSubmissionError):
            validate_answers(SMOKING, answers)

    def test_message_is_user_facing(self):
        with pytest.raises(IncompleteSubmissionError, match="Vastaa kaikkiin kysymyksiin"):
            validate_answers(ALCOHOL, {})

    def test_unknown_question_rejected(self):
        answers = make_test_answers(SMOKING)
        answers[7] = 1
        with pytest.raises(InvalidAnswerError):
            validate_answers(SMOKING, answers)

    def test_value_outside_options_rejected(self):
        answers = make_test_answers(ALCOHOL)
        answers[9] = 3
        with pytest.raises(InvalidAnswerError):
            validate_answers(ALCOHOL, answers)

    def test_normalise_keys_to_int(self):
        assert normalise_answers(SUBSTANCE, {"1": " KYLLÄ "}) == {1: YES}


# ─── Submission & history ─────────────────────────────────────────────────────

class TestSubmit:
    NOW = datetime(2026, 3, 5, 9, 30, tzinfo=timezone.utc)

    def test_appends_result(self, empty_store):
        result = submit_test(empty_store, SMOKING, make_test_answers(SMOKING), now=self.NOW)
        assert result.saved
        # the last Fagerström option for item 4 is "yli 30 savuketta" (3 points)
        assert result.score == 3
        assert result.date == "2026-03-05T09:30:00.000Z"
        history = load_results(empty_store, SMOKING)
        assert len(history) == 1
        assert history[0].answers == result.answers

    def test_history_is_append_only(self, empty_store):
        submit_test(empty_store, ALCOHOL, make_test_answers(ALCOHOL))
        best = {q.id: max(q.values()) for q in ALCOHOL.questions}
        submit_test(empty_store, ALCOHOL, best)
        assert [r.score for r in load_results(empty_store, ALCOHOL)] == [0, 40]

    @pytest.mark.parametrize("instrument", [ALCOHOL, SMOKING, SUBSTANCE])
    def test_incomplete_leaves_history_unchanged(self, instrument):
        store = make_store()
        submit_test(store, instrument, make_test_answers(instrument))
        before = store.load_test_results(instrument.results_key)

        partial = make_test_answers(instrument, skip=(instrument.questions[0].id,))
        with pytest.raises(IncompleteSubmissionError):
            submit_test(store, instrument, partial)
        assert store.load_test_results(instrument.results_key) == before

    def test_histories_are_separate(self, empty_store):
        submit_test(empty_store, SUBSTANCE, make_test_answers(SUBSTANCE, NO))
        assert load_results(empty_store, SMOKING) == []
        assert load_results(empty_store, SUBSTANCE)[0].score == 2

    def test_write_failure_marks_unsaved(self):
        store = GuideStore(FailingKeyValueStore())
        result = submit_test(store, SMOKING, make_test_answers(SMOKING))
        assert not result.saved

    def test_malformed_history_entries_skipped(self, empty_store):
        empty_store.append_test_result(SMOKING.results_key, {"date": "x"})
        empty_store.append_test_result(SMOKING.results_key, {"score": 4, "date": "y", "answers": {"1": 3}})
        history = load_results(empty_store, SMOKING)
        assert len(history) == 1
        assert history[0].answers == {1: 3}

    def test_record_shape(self):
        record = ScreeningTestResult(3, "2026-01-01T00:00:00.000Z", {2: 1, 1: 2}).to_record()
        assert record == {"score": 3, "date": "2026-01-01T00:00:00.000Z", "answers": {"1": 2, "2": 1}}


class TestAnswerLabel:
    def test_known_value(self):
        assert answer_label(SMOKING.question(1), 3) == "alle 5 minuuttia"

    def test_json_string_value(self):
        assert answer_label(SMOKING.question(1), "0") == "yli 60 minuuttia"

    def test_missing(self):
        assert answer_label(SUBSTANCE.question(1), None) == NO_ANSWER_LABEL

    def test_unknown(self):
        assert answer_label(SUBSTANCE.question(1), "ehkä") == UNKNOWN_ANSWER_LABEL
