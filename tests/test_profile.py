"""
Tests for profile derivation, content flags and section relevance.
"""
import pytest
from factories import make_answers, make_profile, make_store

from preop_guide.models import AgeGroup, ContentFlags, Relevance, SECTION_IDS
from preop_guide.profile import (
    default_profile,
    derive_content_flags,
    derive_profile,
    has_health_condition,
    has_lifestyle_factor,
    is_in_age_group,
    load_profile,
    personalized_recommendations,
    risk_factors,
    section_relevance,
    sort_sections,
    visible_sections,
)


# ─── derive_profile ───────────────────────────────────────────────────────────

class TestDeriveProfile:
    def test_none_gives_default(self):
        profile = derive_profile(None)
        assert profile == default_profile()
        assert not profile.has_completed_survey
        assert profile.show_all_content
        assert profile.lifestyle == frozenset()

    def test_fields_from_answers(self, senior_answers):
        profile = derive_profile(senior_answers)
        assert profile.has_completed_survey
        assert profile.age_group == AgeGroup.OVER_65
        assert profile.lifestyle == {"smoking", "low_activity"}
        assert profile.health_conditions == {"diabetes", "heart_disease"}
        assert not profile.show_all_content

    def test_idempotent(self, senior_answers):
        assert derive_profile(senior_answers) == derive_profile(senior_answers)

    def test_unknown_age_group_ignored(self):
        assert derive_profile(make_answers(age="teen")).age_group is None

    def test_empty_answers_still_completed(self):
        profile = derive_profile({})
        assert profile.has_completed_survey
        assert profile.age_group is None

    def test_unreadable_answers_give_default(self):
        assert derive_profile(["age"]) == default_profile()

    def test_show_all_toggle(self, senior_answers):
        assert derive_profile(senior_answers, show_all=True).show_all_content

    def test_has_checks_both_sets(self, senior_profile):
        assert senior_profile.has("smoking")
        assert senior_profile.has("diabetes")
        assert not senior_profile.has("alcohol")


class TestStoredProfileRoundTrip:
    @pytest.mark.parametrize("age,lifestyle,conditions", [
        ("under_65", [], []),
        ("over_65", ["smoking", "alcohol", "substance", "low_activity"], ["diabetes"]),
        ("under_65", ["alcohol"], ["sleep_apnea", "heart_disease", "mental_health"]),
    ])
    def test_round_trip(self, age, lifestyle, conditions):
        store = make_store(make_answers(age, list(reversed(lifestyle)), conditions))
        profile = load_profile(store)
        assert profile.age_group == AgeGroup(age)
        assert profile.lifestyle == set(lifestyle)
        assert profile.health_conditions == set(conditions)

    def test_no_survey_default(self, empty_store):
        assert load_profile(empty_store) == default_profile()

    def test_show_all_preference_applied(self, senior_answers):
        store = make_store(senior_answers, show_all=True)
        assert load_profile(store).show_all_content

    def test_timestamp_and_session_copied(self, senior_store):
        profile = load_profile(senior_store)
        envelope = senior_store.load_survey_envelope()
        assert profile.timestamp == envelope["timestamp"]
        assert profile.session_id == envelope["sessionId"]


# ─── Content flags ────────────────────────────────────────────────────────────

class TestContentFlags:
    def test_unprofiled_all_true(self):
        flags = derive_content_flags(default_profile())
        assert all(flags.as_dict().values())
        assert set(flags.as_dict()) == set(ContentFlags.model_fields)

    def test_exercise_always_true(self, healthy_profile):
        assert derive_content_flags(healthy_profile).show_exercise_content

    def test_senior_flags(self, senior_profile):
        flags = derive_content_flags(senior_profile)
        assert flags.show_senior_content
        assert not flags.show_young_adult_content
        assert flags.show_smoking_content
        assert not flags.show_alcohol_content
        assert flags.show_diabetes_content
        assert flags.show_heart_disease_content
        assert not flags.show_sleep_apnea_content
        assert not flags.show_all_content

    def test_healthy_adult_flags(self, healthy_profile):
        flags = derive_content_flags(healthy_profile)
        assert flags.show_young_adult_content
        assert not flags.show_substance_content
        assert not flags.show_mental_health_content


# ─── Section relevance ────────────────────────────────────────────────────────

class TestSectionRelevance:
    def test_unprofiled_is_all(self):
        for section_id in SECTION_IDS:
            assert section_relevance(section_id, default_profile()) == Relevance.ALL

    def test_show_all_is_all(self, senior_answers):
        profile = derive_profile(senior_answers, show_all=True)
        assert section_relevance("substance_use", profile) == Relevance.ALL

    @pytest.mark.parametrize("section_id,lifestyle,conditions,expected", [
        ("movement",         ["low_activity"], [],                Relevance.HIGH),
        ("movement",         [],               [],                Relevance.NORMAL),
        ("nutrition",        [],               ["diabetes"],      Relevance.HIGH),
        ("nutrition",        [],               ["heart_disease"], Relevance.HIGH),
        ("nutrition",        [],               ["sleep_apnea"],   Relevance.NORMAL),
        ("mental",           [],               ["mental_health"], Relevance.HIGH),
        ("mental_wellbeing", [],               [],                Relevance.NORMAL),
        ("substance_use",    ["smoking"],      [],                Relevance.HIGH),
        ("substance_use",    ["alcohol"],      [],                Relevance.HIGH),
        ("substance_use",    ["substance"],    [],                Relevance.NOT_APPLICABLE),
        ("substance_use",    [],               [],                Relevance.NOT_APPLICABLE),
        ("other_diseases",   [],               ["mental_health"], Relevance.HIGH),
        ("other_diseases",   ["smoking"],      [],                Relevance.NOT_APPLICABLE),
    ])
    def test_rules(self, section_id, lifestyle, conditions, expected):
        profile = make_profile(lifestyle=lifestyle, health_conditions=conditions)
        assert section_relevance(section_id, profile) == expected

    def test_sort_is_stable_high_first(self, senior_profile):
        ordered = sort_sections(SECTION_IDS, senior_profile)
        # movement, nutrition, substance_use and other_diseases are HIGH; mental is NORMAL
        assert ordered == ["movement", "nutrition", "substance_use", "other_diseases", "mental_wellbeing"]

    def test_sort_unprofiled_keeps_registry_order(self):
        assert sort_sections(SECTION_IDS, default_profile()) == SECTION_IDS

    def test_not_applicable_hidden(self, healthy_profile):
        shown = visible_sections(healthy_profile)
        assert "substance_use" not in shown
        assert "other_diseases" not in shown

    def test_not_applicable_visible_once_visited(self, healthy_profile):
        shown = visible_sections(healthy_profile, visited=["diseases"])
        assert shown[-1] == "other_diseases"

    def test_show_all_lists_everything(self):
        profile = make_profile(show_all=True)
        assert visible_sections(profile) == SECTION_IDS


# ─── Helpers ──────────────────────────────────────────────────────────────────

class TestHelpers:
    def test_single_attribute_checks(self, senior_profile):
        assert has_lifestyle_factor(senior_profile, "smoking")
        assert not has_lifestyle_factor(senior_profile, "diabetes")
        assert has_health_condition(senior_profile, "diabetes")
        assert is_in_age_group(senior_profile, "over_65")
        assert not is_in_age_group(default_profile(), "over_65")

    def test_recommendations(self, senior_profile):
        recs = personalized_recommendations(senior_profile)
        assert "Kaatumisen ehkäisy" in recs["priority"]
        assert "Tupakoinnin lopettaminen" in recs["lifestyle"]
        assert "Verensokerin seuranta" in recs["medical"]

    def test_recommendations_empty_for_default(self):
        assert all(not v for v in personalized_recommendations(default_profile()).values())

    def test_risk_factors(self, senior_profile):
        risks = {r.factor: r.level for r in risk_factors(senior_profile)}
        assert risks["Tupakointi"] == "high"
        assert risks["Diabetes"] == "high"
        assert risks["Vähäinen liikunta"] == "medium"
