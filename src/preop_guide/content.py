"""
Static document prose.

Every guidance passage is a tuple of ``(kind, payload)`` parts that the
document templates turn into layout blocks:

  ("group", text)    age-tier heading
  ("h3", text)       sub-heading
  ("h4", text)       minor heading
  ("p", text)        wrapped paragraph
  ("ul", [items])    bulleted list

The templates decide which passages go into a document; nothing here
depends on the user profile.
"""

from __future__ import annotations

from preop_guide.models import DocumentKind

Passage = tuple[tuple[str, object], ...]

DOCUMENT_TITLES: dict[DocumentKind, str] = {
    DocumentKind.EXERCISE_PLAN:      "Liikuntasuunnitelma",
    DocumentKind.NUTRITION_PLAN:     "Ravitsemussuunnitelma",
    DocumentKind.MENTAL_WELLBEING:   "Henkisen jaksamisen opas",
    DocumentKind.SUBSTANCE_PLAN:     "Päihteiden käytön vähentämissuunnitelma",
    DocumentKind.DISEASE_MANAGEMENT: "Sairauksien hallintasuunnitelma",
    DocumentKind.SUBSTANCE_TEST:     "Huumausainetestin tulokset",
    DocumentKind.ALCOHOL_TEST:       "AUDIT-testin tulokset",
    DocumentKind.SMOKING_TEST:       "Tupakkariippuvuustestin tulokset",
}

PERSONALISED_NOTE = "Personoitu sinulle"
AGE_GROUP_PREFIX  = "Ikäryhmä: "
CREATED_PREFIX    = "Luotu: "
SCORE_PREFIX      = "Pistemäärä: "
ANSWERS_HEADING   = "Vastauksesi:"
ANSWER_PREFIX     = "Vastaus: "

PDF_SUBJECT_PREFIX = "Henkilökohtainen kuntoutumisopas: "
PDF_KEYWORDS       = ("kuntoutuminen", "terveys", "opas", "suunnitelma")


# ─── Exercise plan ───────────────────────────────────────────────────────────

EXERCISE_SECTION = "Henkilökohtainen liikuntasuunnitelma"

EXERCISE_SENIOR: Passage = (
    ("group", "Ikääntyneille (65+ vuotta)"),
    ("h4", "Suositukset:"),
    ("ul", [
        "Kestävyysliikunta: 2,5 tuntia reipasta TAI 1 tunti 15 minuuttia rasittavaa liikuntaa viikossa",
        "Lihaskuntoharjoittelu: Vähintään 2 kertaa viikossa",
        "Tasapaino ja notkeys: Vähintään 2 kertaa viikossa - erityisen tärkeää kaatumisten ehkäisyssä",
    ]),
    ("h4", "Erityishuomiot:"),
    ("ul", [
        "Aloita maltillisesti ja lisää kuormitusta asteittain",
        "Tasapainoharjoitukset ovat erityisen tärkeitä",
        "Muista riittävä palautuminen harjoitusten välillä",
    ]),
)

EXERCISE_ADULT: Passage = (
    ("group", "Työikäisille (18-64 vuotta)"),
    ("h4", "Suositukset:"),
    ("ul", [
        "Kestävyysliikunta: 2,5 tuntia reipasta TAI 1 tunti 15 minuuttia rasittavaa liikuntaa viikossa",
        "Lihaskuntoharjoittelu: Vähintään 2 kertaa viikossa, kaikki suuret lihasryhmät",
        "Tauot istumiseen: Vältä pitkiä istumisjaksoja",
    ]),
)

EXERCISE_TABLE = (
    "Päivittäinen liikuntapäiväkirja (14 päivää)",
    ("Päivä", "Liikunnan tyyppi", "Kesto (min)", "Huomiot/Fiilis"),
)


# ─── Nutrition plan ──────────────────────────────────────────────────────────

NUTRITION_SECTION = "Henkilökohtainen ravitsemussuunnitelma"

NUTRITION: Passage = (
    ("p", "Hyvä ravitsemustila vähentää toimenpiteeseen liittyvää komplikaatioriskiä sekä edistää "
          "toipumista ja kuntoutumista. Mikäli on todettu, että ravitsemustilasi ei ole hyvä, aloita "
          "muutosten tekeminen heti. Ravitsemustilan kohentamiseen ei riitä muutama päivä."),
    ("h3", "Ruokailu"),
    ("ul", [
        "Syö säännöllisesti aamupala, lounas, päivällinen ja iltapala.",
        "Ota tarvittaessa välipaloja estääksesi tahaton laihtuminen.",
        "Koosta ateriat ja välipalat monipuolisesti lautasmallin mukaan.",
    ]),
    ("h3", "Ravintolisät"),
    ("p", "Keskustele ravintolisien (esim. vitamiinit, hivenaineet) turvallisuudesta ja "
          "tarpeellisuudesta hoitavan lääkärisi tai sairaanhoitajan kanssa."),
)

NUTRITION_TABLE = (
    "Päivittäinen ravitsemuspäiväkirja (14 päivää)",
    ("Päivä", "Aamiainen", "Lounas", "Päivällinen", "Välipalat"),
)


# ─── Mental wellbeing ────────────────────────────────────────────────────────

MENTAL_SECTION = "Henkisen jaksamisen opas"

MENTAL_WELLBEING: Passage = (
    ("p", "Sairastuminen ja tuleva toimenpide vaikuttavat arjessa selviytymiseen. Tämä kaikki "
          "saattaa heikentää toiminta- ja keskittymiskykyä hetkellisesti. Mieli sopeutuu "
          "muuttuneeseen elämäntilanteeseen vähitellen."),
    ("h3", "Mikä auttaa sinua jaksamaan?"),
    ("ul", [
        "Puhu läheistesi kanssa.",
        "Kirjoita ajatuksiasi paperille.",
        "Riittävä uni on tärkeää.",
        "Ulkoile ja liiku kun vointisi sen sallii.",
        "Opettele rentoutumaan.",
        "Huumori on myös tärkeä voimavara.",
    ]),
)


# ─── Substance plan ──────────────────────────────────────────────────────────

SUBSTANCE_SECTION = "Päihteiden käytön vähentämis- ja lopettamissuunnitelma"

SUBSTANCE_SMOKING: Passage = (
    ("h3", "Tupakoinnin lopettaminen"),
    ("p", "Tupakointi heikentää merkittävästi hoitotuloksia. Lopettamalla tupakoinnin mahdollisimman "
          "varhain ennen hoitoasi parannat toipumisennustettasi. Lyhyestäkin savuttomuudesta on hyötyä."),
    ("h4", "Lopettamisen keinoja:"),
    ("ul", [
        "Nikotiinikorvaushoito (laastari, purukumi, imeskelytabletti)",
        "Reseptilääkkeet (varenikliini, bupropioni)",
        "Käyttäytymisterapia ja vertaistuki",
        "Stumppi-ohjelma: stumppi.fi",
    ]),
)

SUBSTANCE_ALCOHOL: Passage = (
    ("h3", "Alkoholin käyttö"),
    ("p", "Toimenpidettä odottaessa on turvallisinta pidättäytyä alkoholin käytöstä. Toimenpidettä "
          "edeltävänä päivänä ja toimenpidepäivänä alkoholin käyttö on kielletty."),
    ("h4", "Alkoholin vaikutukset:"),
    ("ul", [
        "Heikentää immuunijärjestelmää",
        "Lisää verenvuodon riskiä",
        "Vaikuttaa anestesia-aineiden toimintaan",
        "Hidastaa haavan paranemista",
    ]),
)

SUBSTANCE_OTHER: Passage = (
    ("h3", "Muiden päihteiden käyttö"),
    ("p", "Minkä tahansa päihteen säännöllinen käyttö voi vaikuttaa negatiivisesti toipumiseesi. "
          "On tärkeää keskustella lääkärin kanssa kaikesta päihteiden käytöstä."),
)

SUBSTANCE_IMPORTANT: Passage = (
    ("h3", "Tärkeää"),
    ("p", "Jos käytät päihteitä säännöllisesti tai runsaasti, älä lopeta äkillisesti. Keskustele "
          "lääkärin kanssa turvallisesta lopettamisesta."),
    ("p", "Rehellisyys päihteiden käytöstä on tärkeää turvallisuutesi vuoksi. Hoitohenkilökunta "
          "ei tuomitse vaan auttaa."),
)

SUPPORT_HEADING: Passage = (("h3", "Tukea ja apua"),)

SUPPORT_SMOKING: Passage = (
    ("h4", "Tupakoinnin lopettaminen:"),
    ("ul", [
        "Stumppi.fi - Online-tuki",
        "Terveyskeskus - Nikotiinikorvaushoito",
        "Apteekit - Neuvonta ja tuotteet",
    ]),
)

SUPPORT_ALCOHOL: Passage = (
    ("h4", "Alkoholiongelmat:"),
    ("ul", [
        "A-klinikka - Päihdepalvelut",
        "AA-ryhmät - Vertaistuki",
        "Päihdelinkki.fi - Online-palvelut",
    ]),
)

SUPPORT_SUBSTANCE: Passage = (
    ("h4", "Huumausaineongelmat:"),
    ("ul", [
        "Irti Huumeista ry - Vertaistuki ja neuvonta",
        "A-klinikka - Päihdepalvelut",
        "Tukikohta ry - Kuntoutuspalvelut",
    ]),
)

SUBSTANCE_TABLE = (
    "Päivittäinen päihteiden käytön päiväkirja (14 päivää)",
    ("Päivä", "Määrä", "Tilanne/Tunne", "Huomiot"),
)


# ─── Disease management ──────────────────────────────────────────────────────

DISEASE_SECTION = "Sairauksien hallintasuunnitelma"

DISEASE_DIABETES: Passage = (
    ("h3", "Diabetes"),
    ("p", "Huono verensokeritasapaino altistaa tulehduksille, tukoksille ja muille "
          "komplikaatioille. Verensokereissa tavoitellaan tasoa 3,9-10 mmol/l."),
)

DISEASE_SLEEP_APNEA: Passage = (
    ("h3", "Uniapnea"),
    ("p", "Jos epäilet itse tai puolisosi epäilee sinun sairastavan uniapneaa, hakeudu lääkärin "
          "vastaanotolle. Jos Sinulla on todettu uniapnea ja sen hoidossa on haasteita, ota yhteyttä "
          "hoitavaan yksikköön."),
)

DISEASE_HEART: Passage = (
    ("h3", "Sydänsairaus"),
    ("h4", "Ennen toimenpidettä"),
    ("ul", [
        "Jatka sydänlääkitystä normaalisti (ellei toisin ohjeisteta)",
        "Verenpaineen säännöllinen seuranta",
        "Vältä rasittavaa liikuntaa 1-2 päivää ennen",
        "Ilmoita kaikista oireista hoitohenkilökunnalle",
    ]),
    ("h4", "Lääkitys"),
    ("ul", [
        "Beetasalpaajat: yleensä jatketaan",
        "ACE-estäjät: voidaan tauottaa",
        "Verenohennus: yksilöllinen arvio",
        "Aspiriini: seuraa lääkärin ohjeita",
    ]),
    ("h4", "Milloin ottaa yhteyttä?"),
    ("ul", [
        "Rintakipu tai hengenahdistus",
        "Rytmihäiriöt",
        "Huimaus tai pyörtyminen",
        "Jalkojen turvotus",
    ]),
)

DISEASE_ORAL_HEALTH: Passage = (
    ("h3", "Suun terveys"),
    ("p", "Hoitamattomat hampaat ja iensairaudet altistavat tulehduksille mm. leikkauksen jälkeen "
          "tai syöpälääkehoitojen aikana. Hammaslääkärillä ja suuhygienistillä onkin syytä käydä "
          "hyvissä ajoin ennen leikkaukseen tai syöpälääkehoitoon tuloa."),
)


# ─── Test-result advice blocks ───────────────────────────────────────────────

TEST_ADVICE: dict[DocumentKind, Passage] = {
    DocumentKind.ALCOHOL_TEST: (),
    DocumentKind.SMOKING_TEST: (
        ("h3", "Tupakoinnin lopettamisen hyödyt:"),
        ("ul", [
            "Haavan paraneminen nopeutuu",
            "Haavojen tulehtuminen vähenee",
            "Hengitys helpottuu ja keuhkokuumeen vaara vähenee",
            "Sydän- ja aivoinfarktin sekä keuhkoveritulpan vaara vähenee",
            "Hoitoaika sairaalassa lyhenee",
        ]),
    ),
    DocumentKind.SUBSTANCE_TEST: (
        ("h3", "Tärkeää tietoa:"),
        ("p", "Jos sinulla on huolta päihteiden käytöstäsi, älä epäröi hakea apua. Terveydenhuollon "
              "ammattilaiset voivat tarjota tukea ja ohjausta tilanteesi parantamiseksi."),
    ),
}
