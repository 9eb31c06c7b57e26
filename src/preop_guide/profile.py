"""
profile.py – Profile Deriver
============================
Turns stored survey answers into a ``UserProfile`` and everything the
presentation layer needs to personalise content:

  derive_profile(raw_answers, show_all)   → UserProfile   (pure)
  load_profile(store)                     → UserProfile   (store-backed)
  derive_content_flags(profile)           → ContentFlags
  section_relevance(section_id, profile)  → Relevance
  sort_sections / visible_sections        ordering + not-applicable policy
  personalized_recommendations(profile)   → dict[str, list[str]]
  risk_factors(profile)                   → list[RiskFactor]

Nothing here writes to the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from preop_guide.models import (
    SECTION_IDS,
    AgeGroup,
    ContentFlags,
    MultiChoice,
    RawAnswers,
    Relevance,
    SingleChoice,
    UserProfile,
    normalise_section_id,
    parse_raw_answers,
)
from preop_guide.storage import PREFERENCES, GuideStore

logger = logging.getLogger(__name__)

# Display order for personalised views
_RELEVANCE_ORDER: dict[Relevance, int] = {
    Relevance.HIGH:           0,
    Relevance.NORMAL:         1,
    Relevance.NOT_APPLICABLE: 2,
    Relevance.ALL:            1,
}

_AGE_GROUP_DISPLAY = {
    "under_65": "18-64 vuotta",
    "over_65":  "65+ vuotta",
}

_LIFESTYLE_DISPLAY = {
    "smoking":      "Tupakointi",
    "alcohol":      "Alkoholin käyttö",
    "substance":    "Muiden päihteiden käyttö",
    "low_activity": "Vähäinen liikunta",
}

_CONDITION_DISPLAY = {
    "diabetes":      "Diabetes",
    "sleep_apnea":   "Uniapnea",
    "heart_disease": "Sydänsairaus",
    "mental_health": "Mielenterveyden haasteet",
}


def default_profile() -> UserProfile:
    """Profile of a user who has not answered the survey: show everything."""
    return UserProfile(
        has_completed_survey=False,
        age_group=None,
        lifestyle=frozenset(),
        health_conditions=frozenset(),
        show_all_content=True,
    )


def _age_group(answer: Any) -> Optional[AgeGroup]:
    value = answer.value if isinstance(answer, SingleChoice) else None
    if not value:
        return None
    try:
        return AgeGroup(value)
    except ValueError:
        logger.debug("Ignoring unknown age group %r", value)
        return None


def _values(answer: Any) -> frozenset[str]:
    if isinstance(answer, MultiChoice):
        return answer.values
    if isinstance(answer, SingleChoice) and answer.value:
        return frozenset([answer.value])
    return frozenset()


def derive_profile(
    raw_answers: RawAnswers | dict[str, Any] | None,
    show_all: bool = False,
    *,
    timestamp: Optional[str] = None,
    session_id: Optional[str] = None,
) -> UserProfile:
    """
    Build a ``UserProfile`` from survey answers.

    ``None`` (no survey saved) yields the default, show-everything profile.
    Loosely typed JSON answers are resolved against the survey schema first;
    answers that cannot be resolved are treated the same as no answers.
    """
    if raw_answers is None:
        return default_profile()
    try:
        answers = parse_raw_answers(dict(raw_answers))
    except (TypeError, ValueError) as exc:
        logger.warning("Unreadable survey answers, using default profile: %s", exc)
        return default_profile()

    return UserProfile(
        has_completed_survey=True,
        age_group=_age_group(answers.get("age")),
        lifestyle=_values(answers.get("lifestyle")),
        health_conditions=_values(answers.get("health_conditions")),
        show_all_content=bool(show_all),
        timestamp=timestamp,
        session_id=session_id,
    )


def load_profile(store: GuideStore) -> UserProfile:
    """Re-derive the profile from whatever is currently stored."""
    envelope = store.load_survey_envelope()
    if envelope is None:
        return default_profile()
    prefs = store.read_json(PREFERENCES) or {}
    show_all = bool(prefs.get("showAllContent", False)) if isinstance(prefs, dict) else False
    return derive_profile(
        envelope["answers"],
        show_all,
        timestamp=envelope.get("timestamp"),
        session_id=envelope.get("sessionId"),
    )


# ─── Content flags ────────────────────────────────────────────────────────────

def derive_content_flags(profile: UserProfile) -> ContentFlags:
    """One flag per content category. Fail-open: an unprofiled user sees everything."""
    if not profile.has_completed_survey:
        return ContentFlags(**{name: True for name in ContentFlags.model_fields})

    lifestyle  = profile.lifestyle
    conditions = profile.health_conditions
    return ContentFlags(
        show_all_content=profile.show_all_content,
        show_young_adult_content=profile.age_group == AgeGroup.UNDER_65,
        show_senior_content=profile.age_group == AgeGroup.OVER_65,
        show_smoking_content="smoking" in lifestyle,
        show_alcohol_content="alcohol" in lifestyle,
        show_substance_content="substance" in lifestyle,
        show_exercise_content=True,   # movement guidance applies to everyone
        show_diabetes_content="diabetes" in conditions,
        show_sleep_apnea_content="sleep_apnea" in conditions,
        show_heart_disease_content="heart_disease" in conditions,
        show_mental_health_content="mental_health" in conditions,
    )


# ─── Section relevance ────────────────────────────────────────────────────────

def section_relevance(section_id: str, profile: UserProfile) -> Relevance:
    """Rank one content section for *profile*; ``ALL`` when ranking does not apply."""
    if not profile.has_completed_survey or profile.show_all_content:
        return Relevance.ALL

    lifestyle  = profile.lifestyle
    conditions = profile.health_conditions
    section_id = normalise_section_id(section_id)

    if section_id == "movement":
        return Relevance.HIGH if "low_activity" in lifestyle else Relevance.NORMAL
    if section_id == "nutrition":
        if "diabetes" in conditions or "heart_disease" in conditions:
            return Relevance.HIGH
        return Relevance.NORMAL
    if section_id == "mental_wellbeing":
        return Relevance.HIGH if "mental_health" in conditions else Relevance.NORMAL
    if section_id == "substance_use":
        if "smoking" not in lifestyle and "alcohol" not in lifestyle:
            return Relevance.NOT_APPLICABLE
        return Relevance.HIGH
    if section_id == "other_diseases":
        return Relevance.HIGH if conditions else Relevance.NOT_APPLICABLE
    return Relevance.NORMAL


def sort_sections(section_ids: Iterable[str], profile: UserProfile) -> list[str]:
    """Stable sort HIGH < NORMAL < NOT_APPLICABLE; registry order when unranked."""
    ids = [normalise_section_id(s) for s in section_ids]
    if not profile.has_completed_survey or profile.show_all_content:
        return ids
    return sorted(ids, key=lambda s: _RELEVANCE_ORDER[section_relevance(s, profile)])


def visible_sections(
    profile: UserProfile,
    visited: Iterable[str] = (),
    section_ids: Iterable[str] = SECTION_IDS,
) -> list[str]:
    """
    Sections to show, in display order.

    In the personalised view a not-applicable section is hidden unless the
    user has already visited it; with show-all every section is listed.
    """
    visited = {normalise_section_id(v) for v in visited}
    shown = [
        s for s in (normalise_section_id(i) for i in section_ids)
        if section_relevance(s, profile) != Relevance.NOT_APPLICABLE or s in visited
    ]
    return sort_sections(shown, profile)


# ─── Single-attribute checks ──────────────────────────────────────────────────

def has_lifestyle_factor(profile: UserProfile, factor: str) -> bool:
    return factor in profile.lifestyle


def has_health_condition(profile: UserProfile, condition: str) -> bool:
    return condition in profile.health_conditions


def is_in_age_group(profile: UserProfile, age_group: str) -> bool:
    return profile.age_group is not None and profile.age_group.value == age_group


# ─── Recommendations & risk factors ───────────────────────────────────────────

@dataclass
class RiskFactor:
    factor: str
    level:  str   # "high" | "medium"


def personalized_recommendations(profile: UserProfile) -> dict[str, list[str]]:
    """Short recommendation labels grouped by category."""
    recs: dict[str, list[str]] = {
        "priority":  [],
        "exercise":  [],
        "nutrition": [],
        "lifestyle": [],
        "medical":   [],
    }

    if profile.age_group == AgeGroup.OVER_65:
        recs["exercise"].append("Tasapaino- ja voimaharjoittelu")
        recs["nutrition"].append("Riittävä proteiinin saanti")
        recs["priority"].append("Kaatumisen ehkäisy")
    elif profile.age_group == AgeGroup.UNDER_65:
        recs["exercise"].append("Kestävyys- ja lihaskuntoharjoittelu")
        recs["nutrition"].append("Monipuolinen ruokavalio")

    if "smoking" in profile.lifestyle:
        recs["lifestyle"].append("Tupakoinnin lopettaminen")
        recs["priority"].append("Nikotiinikorvaushoito")
    if "alcohol" in profile.lifestyle:
        recs["lifestyle"].append("Alkoholin käytön vähentäminen")
    if "low_activity" in profile.lifestyle:
        recs["priority"].append("Liikunnan lisääminen asteittain")
        recs["exercise"].append("Aloita kevyellä liikunnalla")

    if "diabetes" in profile.health_conditions:
        recs["medical"].append("Verensokerin seuranta")
        recs["nutrition"].append("Hiilihydraattien hallinta")
    if "sleep_apnea" in profile.health_conditions:
        recs["medical"].append("CPAP-laitteen käyttö")
        recs["lifestyle"].append("Painonhallinta")
    if "heart_disease" in profile.health_conditions:
        recs["medical"].append("Verenpaineen seuranta")
        recs["nutrition"].append("Vähäsuolainen ruokavalio")
    if "mental_health" in profile.health_conditions:
        recs["lifestyle"].append("Stressinhallinta")
        recs["priority"].append("Mielenterveyden tuki")

    return recs


_CONDITION_RISK = {
    "diabetes":      RiskFactor("Diabetes", "high"),
    "sleep_apnea":   RiskFactor("Uniapnea", "medium"),
    "heart_disease": RiskFactor("Sydänsairaus", "high"),
    "mental_health": RiskFactor("Mielenterveyden haasteet", "medium"),
}


def risk_factors(profile: UserProfile) -> list[RiskFactor]:
    risks: list[RiskFactor] = []
    if profile.age_group == AgeGroup.UNDER_65:
        risks.append(RiskFactor("Ikä alle 65 vuotta", "medium"))
    elif profile.age_group == AgeGroup.OVER_65:
        risks.append(RiskFactor("Ikä yli 65 vuotta", "medium"))

    if "smoking" in profile.lifestyle:
        risks.append(RiskFactor("Tupakointi", "high"))
    if "alcohol" in profile.lifestyle:
        risks.append(RiskFactor("Alkoholin käyttö", "medium"))
    if "low_activity" in profile.lifestyle:
        risks.append(RiskFactor("Vähäinen liikunta", "medium"))

    for condition in sorted(profile.health_conditions):
        if condition in _CONDITION_RISK:
            risks.append(_CONDITION_RISK[condition])
    return risks


# ─── Display helpers ──────────────────────────────────────────────────────────

def age_group_display(age_group: AgeGroup | str | None) -> str:
    key = age_group.value if isinstance(age_group, AgeGroup) else age_group
    return _AGE_GROUP_DISPLAY.get(key or "", "Ei määritelty")


def lifestyle_display(factor: str) -> str:
    return _LIFESTYLE_DISPLAY.get(factor, factor)


def health_condition_display(condition: str) -> str:
    return _CONDITION_DISPLAY.get(condition, condition)
