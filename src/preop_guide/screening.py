"""
screening.py – Screening Test Engine
====================================
Three self-assessment instruments, each declared as plain data:

  ALCOHOL    AUDIT, 10 items, option values 0–4 (items 9–10: 0/2/4), max 40
  SMOKING    Fagerström, 6 items, mixed 0–3 and yes/no,              max 10
  SUBSTANCE  DAST-20, 20 yes/no items,                                max 20

Scoring is table-driven: every item has a ``ScoringRule``. Items of the
AUDIT and Fagerström tests add the numeric value of the chosen option;
DAST-20 items add one point when the answer equals the rule's
``scores_on`` value. DAST-20 items 4 and 5 are reverse-keyed and score on
``"ei"``; every other item scores on ``"kyllä"``.

  score(instrument, answers)            → int
  classify(instrument, score)           → ScreeningOutcome
  validate_answers(instrument, answers) → normalised answers (or raises)
  submit_test(store, instrument, answers, now) → ScreeningTestResult
  load_results(store, instrument)       → list[ScreeningTestResult]

A submission with an unanswered question is rejected before anything is
scored or stored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union

from preop_guide.models import DocumentKind
from preop_guide.storage import GuideStore

logger = logging.getLogger(__name__)

AnswerValue = Union[int, str]

NO_ANSWER_LABEL      = "Ei vastausta"
UNKNOWN_ANSWER_LABEL = "Tuntematon vastaus"


# ─── Exceptions ──────────────────────────────────────────────────────────────

class ScreeningError(ValueError):
    """Base class for rejected screening-test submissions."""


class IncompleteSubmissionError(ScreeningError):
    def __init__(self, instrument: str, missing: list[int]):
        self.instrument = instrument
        self.missing    = missing
        super().__init__(
            f"Vastaa kaikkiin kysymyksiin ennen lähettämistä "
            f"({instrument}: {len(missing)} vastaamatta, kysymykset {', '.join(map(str, missing))})"
        )


class InvalidAnswerError(ScreeningError):
    pass


# ─── Instrument data model ───────────────────────────────────────────────────

@dataclass(frozen=True)
class AnswerOption:
    label: str
    value: AnswerValue


@dataclass(frozen=True)
class Question:
    id:       int
    text:     str
    options:  tuple[AnswerOption, ...]

    def values(self) -> list[AnswerValue]:
        return [o.value for o in self.options]

    def option_for(self, value: Any) -> Optional[AnswerOption]:
        return next((o for o in self.options if o.value == value), None)


@dataclass(frozen=True)
class ScoringRule:
    """
    ``kind="value"`` adds the numeric option value;
    ``kind="match"`` adds one point when the answer equals ``scores_on``.
    """
    kind:      str = "value"
    scores_on: Optional[str] = None

    def points(self, value: AnswerValue) -> int:
        if self.kind == "match":
            return 1 if value == self.scores_on else 0
        return int(value)


@dataclass(frozen=True)
class Tier:
    id:          str
    upper:       Optional[int]   # inclusive upper bound; None for the open top tier
    title:       str
    description: str = ""


@dataclass(frozen=True)
class ScreeningOutcome:
    tier:        str
    title:       str
    description: str


@dataclass(frozen=True)
class Instrument:
    key:           str                        # "alcohol" | "smoking" | "substance"
    name:          str
    document_kind: DocumentKind
    questions:     tuple[Question, ...]
    rules:         tuple[tuple[int, ScoringRule], ...]
    tiers:         tuple[Tier, ...]
    max_score:     int

    @property
    def results_key(self) -> str:
        return f"{self.key}_test_results"

    def question(self, question_id: int) -> Question:
        for q in self.questions:
            if q.id == question_id:
                return q
        raise KeyError(question_id)

    def rule_for(self, question_id: int) -> ScoringRule:
        return dict(self.rules).get(question_id, ScoringRule())


@dataclass
class ScreeningTestResult:
    """One completed submission as kept in the per-instrument history."""
    score:   int
    date:    str                              # ISO-8601, UTC
    answers: dict[int, AnswerValue] = field(default_factory=dict)
    saved:   bool = True                      # False when the history write failed

    def to_record(self) -> dict[str, Any]:
        return {
            "score":   self.score,
            "date":    self.date,
            "answers": {str(k): v for k, v in sorted(self.answers.items())},
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "ScreeningTestResult":
        answers = record.get("answers") or {}
        return cls(
            score=int(record["score"]),
            date=str(record.get("date", "")),
            answers={int(k): v for k, v in answers.items()},
        )


# ─── Instrument A: AUDIT ─────────────────────────────────────────────────────

_FREQUENCY = (
    AnswerOption("Päivittäin tai lähes päivittäin", 4),
    AnswerOption("Kerran viikossa", 3),
    AnswerOption("Kerran kuussa", 2),
    AnswerOption("Harvemmin kuin kerran kuussa", 1),
    AnswerOption("En koskaan", 0),
)

_FREQUENCY_EI = _FREQUENCY[:4] + (AnswerOption("Ei koskaan", 0),)

ALCOHOL = Instrument(
    key="alcohol",
    name="AUDIT",
    document_kind=DocumentKind.ALCOHOL_TEST,
    questions=(
        Question(1, "Kuinka usein juot olutta, viiniä tai muita alkoholijuomia? Ota mukaan myös ne "
                    "kerrat, jolloin nautit vain pieniä määriä, esimerkiksi pullon keskiolutta tai "
                    "tilkan viiniä.", (
            AnswerOption("4 kertaa viikossa tai useammin", 4),
            AnswerOption("2-3 kertaa viikossa", 3),
            AnswerOption("2-4 kertaa kuussa", 2),
            AnswerOption("Noin kerran kuussa tai harvemmin", 1),
            AnswerOption("En koskaan", 0),
        )),
        Question(2, "Kuinka monta annosta alkoholia yleensä olet ottanut niinä päivinä, jolloin "
                    "käytit alkoholia?", (
            AnswerOption("10 tai enemmän", 4),
            AnswerOption("7-9 annosta", 3),
            AnswerOption("5-6 annosta", 2),
            AnswerOption("3-4 annosta", 1),
            AnswerOption("1-2 annosta", 0),
        )),
        Question(3, "Kuinka usein olet juonut kerralla kuusi tai useampia annoksia?", _FREQUENCY),
        Question(4, "Kuinka usein viimeisen vuoden aikana sinulle kävi niin, että et pystynyt "
                    "lopettamaan alkoholinkäyttöä sen aloittamisen jälkeen?", _FREQUENCY_EI),
        Question(5, "Kuinka usein viimeisen vuoden aikana et ole juomisesi vuoksi saanut tehtyä "
                    "jotain, mikä tavallisesti kuuluu tehtäviisi?", _FREQUENCY_EI),
        Question(6, "Kuinka usein viimeisen vuoden aikana runsaan juomisen jälkeen tarvitsit aamulla "
                    "olutta tai muuta alkoholia päästäksesi paremmin liikkeelle?", _FREQUENCY),
        Question(7, "Kuinka usein viimeisen vuoden aikana tunsit syyllisyyttä tai katumusta "
                    "juomisen jälkeen?", _FREQUENCY),
        Question(8, "Kuinka usein viime vuoden aikana sinulle kävi niin, että et juomisen vuoksi "
                    "pystynyt muistamaan edellisen illan tapahtumia?", _FREQUENCY),
        Question(9, "Oletko itse tai onko joku muu satuttanut tai loukannut itseään sinun "
                    "alkoholinkäyttösi seurauksena?", (
            AnswerOption("Kyllä, viimeisen vuoden aikana", 4),
            AnswerOption("On, mutta ei viimeisen vuoden aikana", 2),
            AnswerOption("Ei", 0),
        )),
        Question(10, "Onko joku läheisesi tai ystäväsi, lääkäri tai joku muu ollut huolissaan "
                     "alkoholinkäytöstäsi tai ehdottanut että vähentäisit juomista?", (
            AnswerOption("On, viimeksi kuluneen vuoden aikana", 4),
            AnswerOption("On, mutta ei viimeisen vuoden aikana", 2),
            AnswerOption("Ei koskaan", 0),
        )),
    ),
    rules=tuple((i, ScoringRule("value")) for i in range(1, 11)),
    tiers=(
        Tier("controlled", 7,    "Alkoholinkäyttö on hallinnassa."),
        Tier("risky",      13,   "Alkoholinkäyttö on niin runsasta, että siihen liittyy riskejä."),
        Tier("dependence", None, "Päihderiippuvuus on todennäköinen. Alkoholinkäyttöä on vähennettävä."),
    ),
    max_score=40,
)


# ─── Instrument B: Fagerström ────────────────────────────────────────────────

_YES_NO_POINTS = (AnswerOption("Kyllä", 1), AnswerOption("Ei", 0))

SMOKING = Instrument(
    key="smoking",
    name="Fagerström",
    document_kind=DocumentKind.SMOKING_TEST,
    questions=(
        Question(1, "Kuinka pian heräämisen jälkeen tupakoit ensimmäisen kerran?", (
            AnswerOption("alle 5 minuuttia", 3),
            AnswerOption("6-30 minuuttia", 2),
            AnswerOption("31-60 minuuttia", 1),
            AnswerOption("yli 60 minuuttia", 0),
        )),
        Question(2, "Onko sinusta vaikeaa olla tupakoimatta tiloissa, joissa se on kiellettyä?",
                 _YES_NO_POINTS),
        Question(3, "Mistä tupakointikerrasta sinun olisi vaikeinta luopua?", (
            AnswerOption("aamun ensimmäisestä", 1),
            AnswerOption("jostain muusta", 0),
        )),
        Question(4, "Kuinka monta savuketta poltat vuorokaudessa?", (
            AnswerOption("1-10 savuketta", 0),
            AnswerOption("11-20 savuketta", 1),
            AnswerOption("21-30 savuketta", 2),
            AnswerOption("yli 30 savuketta", 3),
        )),
        Question(5, "Tupakoitko useammin aamupäivällä kuin muina aikoina?", _YES_NO_POINTS),
        Question(6, "Tupakoitko silloinkin, kun olet niin sairas, että joudut olemaan vuoteessa "
                    "suurimman osan päivästä?", _YES_NO_POINTS),
    ),
    rules=tuple((i, ScoringRule("value")) for i in range(1, 7)),
    tiers=(
        Tier("minimal",  3, "Vähäinen tai ei lainkaan riippuvuutta",
             "Nikotiiniriippuvuutesi on vähäinen. Tupakoinnin lopettaminen on sinulle helpompaa "
             "kuin voimakkaasti riippuvaisille."),
        Tier("moderate", 6, "Kohtalainen riippuvuus",
             "Sinulla on kohtalainen nikotiiniriippuvuus. Tupakoinnin lopettaminen voi vaatia "
             "tukea ja vieroitushoitoa."),
        Tier("strong", None, "Voimakas riippuvuus",
             "Sinulla on voimakas nikotiiniriippuvuus. Suosittelemme vahvasti hakeutumaan "
             "vieroitushoitoon ja käyttämään nikotiinikorvaushoitoa."),
    ),
    max_score=10,
)


# ─── Instrument C: DAST-20 ───────────────────────────────────────────────────

YES = "kyllä"
NO  = "ei"

_YES_NO = (AnswerOption("Kyllä", YES), AnswerOption("Ei", NO))

_DAST_ITEMS = (
    "Oletko koskaan käyttänyt huumeita tai lääkkeitä väärin?",
    "Onko sinulla ollut ongelmia huumeiden tai lääkkeiden käytön vuoksi?",
    "Oletko käyttänyt useampia huumeita tai lääkkeitä samanaikaisesti?",
    "Selviätkö viikkoa ilman päihdyttävien lääkkeiden tai huumeiden käyttöä?",
    "Oletko yrittänyt lopettaa tai vähentää huumeiden tai lääkkeiden käyttöä siinä onnistumatta?",
    'Onko sinulla ollut "mustia aukkoja" tai muistikatkoksia huumeiden tai lääkkeiden käytön jälkeen?',
    "Tunnetko syyllisyyttä tai häpeää huumeiden tai lääkkeiden käytöstäsi?",
    "Ovatko ystäväsi tai perheesi koskaan valittaneet huumeiden tai lääkkeiden käytöstäsi?",
    "Oletko laiminlyönyt velvollisuuksiasi huumeiden tai lääkkeiden käytön vuoksi?",
    "Oletko menettänyt ystäviä huumeiden tai lääkkeiden väärinkäytön vuoksi?",
    "Oletko joutunut vaikeuksiin töissä huumeiden tai lääkkeiden käytön vuoksi?",
    "Oletko joutunut pidätetyksi tai syytteeseen huumeiden tai lääkkeiden hallussapidosta tai käytöstä?",
    "Oletko kokenut vieroitusoireita, kun olet lopettanut huumeiden tai lääkkeiden käytön?",
    "Onko sinulla ollut lääketieteellisiä ongelmia huumeiden tai lääkkeiden käytön seurauksena "
    "(esim. muistinmenetys, hepatiitti, kouristukset, verenvuoto)?",
    "Oletko pyytänyt apua huumeiden tai lääkkeiden käyttöön liittyviin ongelmiin?",
    "Oletko ollut vieroitushoidossa huumeiden tai lääkkeiden käytön vuoksi?",
    "Onko sinulla ollut hallusinaatioita huumeiden tai lääkkeiden käytön seurauksena?",
    "Oletko tuntenut, että elämäsi on hallitsematonta huumeiden tai lääkkeiden käytön takia?",
    "Oletko koskaan yliannostanut huumeita tai lääkkeitä?",
    "Oletko koskaan käyttänyt huumeita tai lääkkeitä väärin estääksesi vieroitusoireita?",
)

# Reverse-keyed items: a "no" answer indicates risk
_DAST_REVERSED = {4, 5}

SUBSTANCE = Instrument(
    key="substance",
    name="DAST-20",
    document_kind=DocumentKind.SUBSTANCE_TEST,
    questions=tuple(Question(i, text, _YES_NO) for i, text in enumerate(_DAST_ITEMS, start=1)),
    rules=tuple(
        (i, ScoringRule("match", NO if i in _DAST_REVERSED else YES))
        for i in range(1, len(_DAST_ITEMS) + 1)
    ),
    tiers=(
        Tier("none", 0, "Ei merkittäviä ongelmia",
             "Vastauksesi eivät viittaa merkittäviin ongelmiin päihteiden käytössä."),
        Tier("consultation", 5, "Ota yhteyttä terveysasemallesi neuvontaa varten",
             "Vastauksesi viittaavat mahdolliseen ongelmaan päihteiden käytössä. Suosittelemme "
             "ottamaan yhteyttä terveysasemallesi saadaksesi neuvontaa ja tukea."),
        Tier("risk_group", 10, "Kuulut riskiryhmään ja hyödyt vieroitusohjelmasta",
             "Vastauksesi osoittavat, että kuulut riskiryhmään. Hyötyisit vieroitusohjelmasta. "
             "Ota yhteyttä terveydenhuollon ammattilaiseen mahdollisimman pian."),
        Tier("significant", None,
             "Huumeiden käyttösi on merkittävää ja tarvitset intensiivistä vieroitushoitoa",
             "Vastauksesi osoittavat merkittävää päihteiden käyttöä. Tarvitset intensiivistä "
             "vieroitushoitoa. Ole yhteydessä terveydenhuollon ammattilaiseen välittömästi."),
    ),
    max_score=20,
)


INSTRUMENTS: dict[str, Instrument] = {i.key: i for i in (ALCOHOL, SMOKING, SUBSTANCE)}


def get_instrument(key: Union[str, DocumentKind]) -> Instrument:
    """Look up by key (``"alcohol"``) or by its test-result document kind."""
    if isinstance(key, DocumentKind) or key in {k.value for k in DocumentKind}:
        kind = DocumentKind(key)
        for instrument in INSTRUMENTS.values():
            if instrument.document_kind == kind:
                return instrument
    if key in INSTRUMENTS:
        return INSTRUMENTS[key]
    raise KeyError(f"Unknown screening instrument: {key!r}")


# ─── Scoring ─────────────────────────────────────────────────────────────────

def _normalise_value(question: Question, value: Any) -> Any:
    """Match JSON-typed values ("3", "Kyllä") to the option's own type."""
    sample = question.options[0].value
    if isinstance(sample, int) and not isinstance(value, bool):
        try:
            return int(value)
        except (TypeError, ValueError):
            return value
    if isinstance(sample, str) and isinstance(value, str):
        return value.strip().lower()
    return value


def normalise_answers(instrument: Instrument, answers: dict[Any, Any]) -> dict[int, Any]:
    """Integer question ids and option-typed values; ``None`` values are dropped."""
    out: dict[int, Any] = {}
    for raw_id, value in (answers or {}).items():
        try:
            qid = int(raw_id)
            question = instrument.question(qid)
        except (TypeError, ValueError, KeyError):
            raise InvalidAnswerError(f"{instrument.name}: unknown question {raw_id!r}") from None
        if value is None:
            continue
        out[qid] = _normalise_value(question, value)
    return out


def validate_answers(instrument: Instrument, answers: dict[Any, Any]) -> dict[int, AnswerValue]:
    """
    Every question answered with one of its own option values.
    Raises ``IncompleteSubmissionError`` or ``InvalidAnswerError``.
    """
    normalised = normalise_answers(instrument, answers)
    missing = [q.id for q in instrument.questions if q.id not in normalised]
    if missing:
        raise IncompleteSubmissionError(instrument.name, missing)
    for qid, value in normalised.items():
        if value not in instrument.question(qid).values():
            raise InvalidAnswerError(f"{instrument.name}: {value!r} is not an option for question {qid}")
    return normalised


def score(instrument: Instrument, answers: dict[Any, Any]) -> int:
    """Sum of the per-item rule points over the answered items."""
    normalised = normalise_answers(instrument, answers)
    return sum(instrument.rule_for(qid).points(value) for qid, value in normalised.items())


def classify(instrument: Instrument, total: int) -> ScreeningOutcome:
    for tier in instrument.tiers:
        if tier.upper is None or total <= tier.upper:
            return ScreeningOutcome(tier.id, tier.title, tier.description)
    last = instrument.tiers[-1]
    return ScreeningOutcome(last.id, last.title, last.description)


def answer_label(question: Question, value: Any) -> str:
    """Human-readable label of the chosen option."""
    if value is None:
        return NO_ANSWER_LABEL
    option = question.option_for(_normalise_value(question, value))
    return option.label if option else UNKNOWN_ANSWER_LABEL


# ─── Submission & history ────────────────────────────────────────────────────

def submit_test(
    store: GuideStore,
    instrument: Instrument,
    answers: dict[Any, Any],
    now: Optional[datetime] = None,
) -> ScreeningTestResult:
    """
    Validate, score and append one result to the instrument's history.
    Validation errors are raised before the store is touched.
    """
    normalised = validate_answers(instrument, answers)
    total = score(instrument, normalised)
    stamp = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    result = ScreeningTestResult(
        score=total,
        date=stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        answers=normalised,
    )
    stored = store.append_test_result(instrument.results_key, result.to_record())
    result.saved = stored.success
    if stored.success:
        logger.info("%s test submitted: score %d/%d", instrument.name, total, instrument.max_score)
    else:
        logger.warning("%s result could not be stored: %s", instrument.name, stored.error)
    return result


def load_results(store: GuideStore, instrument: Instrument) -> list[ScreeningTestResult]:
    """Full history, oldest first; unreadable entries are skipped."""
    results = []
    for record in store.load_test_results(instrument.results_key):
        try:
            results.append(ScreeningTestResult.from_record(record))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Skipping malformed %s result: %s", instrument.name, exc)
    return results
