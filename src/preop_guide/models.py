"""
Data models for the Preop Guide.

Survey schema, the tagged answer union, the derived profile models and the
content-section registry live here; every other module imports from this
one and nothing here imports from the rest of the package.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ─── Enumerations ────────────────────────────────────────────────────────────

class AgeGroup(str, Enum):
    UNDER_65 = "under_65"
    OVER_65  = "over_65"


class LifestyleFactor(str, Enum):
    SMOKING      = "smoking"
    ALCOHOL      = "alcohol"
    SUBSTANCE    = "substance"
    LOW_ACTIVITY = "low_activity"


class HealthCondition(str, Enum):
    DIABETES      = "diabetes"
    SLEEP_APNEA   = "sleep_apnea"
    HEART_DISEASE = "heart_disease"
    MENTAL_HEALTH = "mental_health"


class Relevance(str, Enum):
    """How relevant a content section is for the current profile."""
    ALL            = "all"             # unprofiled or show-all: no ranking
    HIGH           = "high"
    NORMAL         = "normal"
    NOT_APPLICABLE = "not-applicable"


class DocumentKind(str, Enum):
    EXERCISE_PLAN      = "exercise-plan"
    NUTRITION_PLAN     = "nutrition-plan"
    MENTAL_WELLBEING   = "mental-wellbeing"
    SUBSTANCE_PLAN     = "substance-plan"
    DISEASE_MANAGEMENT = "disease-management"
    ALCOHOL_TEST       = "alcohol-test"
    SMOKING_TEST       = "smoking-test"
    SUBSTANCE_TEST     = "substance-test"

    @property
    def is_test_result(self) -> bool:
        return self in (
            DocumentKind.ALCOHOL_TEST,
            DocumentKind.SMOKING_TEST,
            DocumentKind.SUBSTANCE_TEST,
        )


# ─── Survey schema ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SurveyOption:
    id:    str
    label: str


@dataclass(frozen=True)
class SurveyQuestion:
    id:          str
    title:       str
    description: str
    options:     tuple[SurveyOption, ...]
    multiple:    bool = False

    def option_ids(self) -> set[str]:
        return {o.id for o in self.options}

    def label_for(self, option_id: str) -> str:
        return next((o.label for o in self.options if o.id == option_id), option_id)


SURVEY_QUESTIONS: tuple[SurveyQuestion, ...] = (
    SurveyQuestion(
        id="age",
        title="Ikäryhmä",
        description="Valitse ikäryhmäsi",
        options=(
            SurveyOption("under_65", "Alle 65 vuotta"),
            SurveyOption("over_65",  "65 vuotta tai yli"),
        ),
    ),
    SurveyQuestion(
        id="lifestyle",
        title="Elämäntavat",
        description="Valitse kaikki sinuun sopivat vaihtoehdot",
        multiple=True,
        options=(
            SurveyOption("smoking",      "Tupakoin"),
            SurveyOption("alcohol",      "Käytän alkoholia säännöllisesti"),
            SurveyOption("substance",    "Käytän muita päihteitä"),
            SurveyOption("low_activity", "Liikun vähän"),
        ),
    ),
    SurveyQuestion(
        id="health_conditions",
        title="Terveydentila",
        description="Valitse kaikki sinuun sopivat vaihtoehdot",
        multiple=True,
        options=(
            SurveyOption("diabetes",      "Diabetes"),
            SurveyOption("sleep_apnea",   "Uniapnea"),
            SurveyOption("heart_disease", "Sydänsairaus"),
            SurveyOption("mental_health", "Mielenterveyden haasteet"),
        ),
    ),
)

SURVEY_QUESTION_BY_ID: dict[str, SurveyQuestion] = {q.id: q for q in SURVEY_QUESTIONS}
TOTAL_SURVEY_QUESTIONS = len(SURVEY_QUESTIONS)


# ─── Tagged answer union ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class SingleChoice:
    """Answer to a single-select question; ``None`` when unanswered."""
    value: Optional[str] = None

    @property
    def answered(self) -> bool:
        return bool(self.value)

    def flatten(self) -> set[str]:
        return {self.value} if self.value else set()


@dataclass(frozen=True)
class MultiChoice:
    """Answer to a multi-select question; always a set, possibly empty."""
    values: frozenset[str] = field(default_factory=frozenset)

    @property
    def answered(self) -> bool:
        return len(self.values) > 0

    def flatten(self) -> set[str]:
        return set(self.values)


Answer = Union[SingleChoice, MultiChoice]
RawAnswers = dict[str, Answer]


def _as_multi(value: Any) -> MultiChoice:
    if value is None:
        return MultiChoice()
    if isinstance(value, (list, tuple, set, frozenset)):
        return MultiChoice(frozenset(str(v) for v in value if v is not None))
    return MultiChoice(frozenset([str(value)]))


def _as_single(value: Any) -> SingleChoice:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    return SingleChoice(str(value) if value not in (None, "") else None)


def make_answer(question_id: str, value: Any) -> Answer:
    """Resolve a loosely typed value against the survey schema."""
    if isinstance(value, (SingleChoice, MultiChoice)):
        return value
    question = SURVEY_QUESTION_BY_ID.get(question_id)
    if question is not None:
        return _as_multi(value) if question.multiple else _as_single(value)
    # Unknown question: keep its JSON shape
    if isinstance(value, (list, tuple, set, frozenset)):
        return _as_multi(value)
    return _as_single(value)


def parse_raw_answers(data: Optional[dict[str, Any]]) -> Optional[RawAnswers]:
    """Turn the stored JSON mapping into ``RawAnswers``; ``None`` stays ``None``."""
    if data is None:
        return None
    if not isinstance(data, dict):
        raise TypeError(f"Survey answers must be a mapping, got {type(data).__name__}")
    return {str(qid): make_answer(str(qid), value) for qid, value in data.items()}


def dump_raw_answers(answers: RawAnswers) -> dict[str, Any]:
    """JSON-compatible form of ``RawAnswers`` (multi-select values sorted)."""
    out: dict[str, Any] = {}
    for qid, answer in answers.items():
        if isinstance(answer, MultiChoice):
            out[qid] = sorted(answer.values)
        else:
            out[qid] = answer.value
    return out


def flatten_answer_values(answers: Optional[RawAnswers]) -> set[str]:
    """Union of every selected option id across all questions."""
    values: set[str] = set()
    for answer in (answers or {}).values():
        values |= answer.flatten()
    return values


# ─── Derived profile models ──────────────────────────────────────────────────

class UserProfile(BaseModel):
    """
    Normalised view of the stored survey answers.
    Never persisted: re-derived from RawAnswers on every read.
    """
    model_config = ConfigDict(frozen=True)

    has_completed_survey: bool
    age_group:            Optional[AgeGroup] = None
    lifestyle:            frozenset[str] = Field(default_factory=frozenset)
    health_conditions:    frozenset[str] = Field(default_factory=frozenset)
    show_all_content:     bool
    timestamp:            Optional[str] = Field(default=None, description="When the answers were saved")
    session_id:           Optional[str] = None

    def has(self, factor: str) -> bool:
        """True when *factor* is either a lifestyle factor or a health condition."""
        return factor in self.lifestyle or factor in self.health_conditions


class ContentFlags(BaseModel):
    """Boolean visibility switches per content category."""
    model_config = ConfigDict(frozen=True)

    show_all_content:           bool
    show_young_adult_content:   bool
    show_senior_content:        bool
    show_smoking_content:       bool
    show_alcohol_content:       bool
    show_substance_content:     bool
    show_exercise_content:      bool
    show_diabetes_content:      bool
    show_sleep_apnea_content:   bool
    show_heart_disease_content: bool
    show_mental_health_content: bool

    def as_dict(self) -> dict[str, bool]:
        return self.model_dump()


# ─── Content-section registry ────────────────────────────────────────────────

@dataclass(frozen=True)
class ContentSection:
    id:           str
    title:        str
    relevant_for: tuple[str, ...]   # option ids, or the sentinel "all"
    progress_key: str               # storage key of its SectionProgress record
    done_flag:    str               # terminal "task completed" flag name
    topics:       tuple[str, ...]   # trackable sub-topics ("read" toggles)

    def is_personalised_for(self, values: Iterable[str]) -> bool:
        if "all" in self.relevant_for:
            return True
        values = set(values)
        return any(cond in values for cond in self.relevant_for)


CONTENT_SECTIONS: tuple[ContentSection, ...] = (
    ContentSection(
        id="movement",
        title="Liikkuminen",
        relevant_for=("all",),
        progress_key="movement_progress",
        done_flag="exercisesDone",
        topics=("working_age", "elderly"),
    ),
    ContentSection(
        id="nutrition",
        title="Ravitsemus",
        relevant_for=("all",),
        progress_key="nutrition_progress",
        done_flag="mealPlanCreated",
        topics=("plate_model", "protein_senior", "protein_adult"),
    ),
    ContentSection(
        id="mental_wellbeing",
        title="Henkinen jaksaminen",
        relevant_for=("all", "mental_health"),
        progress_key="mental_progress",
        done_flag="exercisesDone",
        topics=("stress", "breathing", "relaxation", "sleep"),
    ),
    ContentSection(
        id="substance_use",
        title="Päihteiden käyttö",
        relevant_for=("smoking", "alcohol", "substance"),
        progress_key="substance_progress",
        done_flag="quizCompleted",
        topics=("smoking", "alcohol", "substance"),
    ),
    ContentSection(
        id="other_diseases",
        title="Muiden sairauksien huomiointi",
        relevant_for=("diabetes", "sleep_apnea", "heart_disease"),
        progress_key="diseases_progress",
        done_flag="checklistCompleted",
        topics=("diabetes", "sleep_apnea", "heart_disease", "mental_health"),
    ),
)

SECTION_BY_ID: dict[str, ContentSection] = {s.id: s for s in CONTENT_SECTIONS}
SECTION_IDS: list[str] = [s.id for s in CONTENT_SECTIONS]

# Short ids used by the overview page
SECTION_ALIASES: dict[str, str] = {
    "mental":   "mental_wellbeing",
    "substance": "substance_use",
    "diseases": "other_diseases",
}


def normalise_section_id(section_id: str) -> str:
    """Map an alias (``"mental"``) to its canonical id; unknown ids pass through."""
    return SECTION_ALIASES.get(section_id, section_id)


def get_section(section_id: str) -> ContentSection:
    """Return the registered section, raising ``KeyError`` for unknown ids."""
    return SECTION_BY_ID[normalise_section_id(section_id)]
