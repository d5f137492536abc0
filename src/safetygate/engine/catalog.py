"""
Built-in rule catalog -- seeded as active v1 rules on first start.

Intake safety (A/B/C):
  Clinical red flags matched lexically in German and English. Negations never
  suppress a match: "Keine Atemnot in Ruhe, aber ..." still fires. Denial
  phrases such as "kein Brustschmerz" are listed as denials instead; when the
  intake states one under relevant_negatives the finding is marked
  contradicted and the level is at least B.

Content validation (critical/warning/info):
  Plausibility, bounds, safety and contraindication checks for generated
  report sections.

Seeding is done by store/rule_store.py; this module is data only.
"""

from dataclasses import dataclass

from .models import FindingAction
from .severity import EscalationLevel, RuleKind, ValidationSeverity

INTAKE_SOURCES = ["intake", "chat"]


@dataclass(frozen=True)
class CatalogRule:
    key: str
    title: str
    kind: str
    level: str
    logic: dict
    action: str | None = None


def _red_flag(key: str, title: str, level: str, keywords: list[str], denials: list[str] | None = None) -> CatalogRule:
    return CatalogRule(
        key=key,
        title=title,
        kind=RuleKind.INTAKE_SAFETY,
        level=level,
        action=FindingAction.BLOCK if level == EscalationLevel.A else FindingAction.ESCALATE,
        logic={
            "type": "keyword",
            "keywords": keywords,
            "denials": denials or [],
            "sources": INTAKE_SOURCES,
        },
    )


# =============================================================================
# INTAKE SAFETY
# =============================================================================

CHEST_PAIN_KEYWORDS = [
    "brustschmerz", "brustschmerzen", "herzschmerz", "herzschmerzen",
    "schmerz in der brust", "schmerzen in der brust", "brust druck", "brustdruck",
    "herzenge", "angina pectoris", "stechen in der brust", "brennen in der brust",
    "engegefühl brust",
    "chest pain", "chest discomfort", "chest pressure", "heart pain", "angina",
    "tightness in chest", "crushing chest", "squeezing chest",
]

CHEST_PAIN_DENIALS = ["kein brustschmerz", "keine brustschmerzen", "no chest pain"]

SYNCOPE_KEYWORDS = [
    "ohnmacht", "ohnmächtig", "bewusstlos", "bewusstlosigkeit", "umgekippt",
    "kollabiert", "zusammengebrochen", "black out", "schwarz vor augen",
    "bewusstsein verloren", "synkope",
    "syncope", "fainted", "passed out", "lost consciousness", "blacked out",
    "collapsed", "blackout",
]

DYSPNEA_KEYWORDS = [
    "atemnot", "keine luft", "nicht atmen", "erstick", "luftnot", "schwer zu atmen",
    "kann nicht atmen", "bekomme keine luft", "kurzatmig", "dyspnoe",
    "cant breathe", "cannot breathe", "shortness of breath", "difficulty breathing",
    "gasping for air", "suffocating", "dyspnea", "severe breathlessness",
]

SUICIDAL_KEYWORDS = [
    "suizid", "selbstmord", "umbringen", "sterben will", "nicht mehr leben",
    "selbstverletzung", "verletze mich", "selbstschädigung", "leben beenden",
    "suizidgedanken", "todesgedanken",
    "suicide", "kill myself", "end my life", "self-harm", "self harm", "hurt myself",
    "suicidal", "want to die", "better off dead",
]

PSYCHIATRIC_CRISIS_KEYWORDS = [
    "panikattacke", "akute panik", "totale panik", "nervenzusammenbruch", "psychose",
    "halluzinationen", "stimmen hören", "höre stimmen", "wahnvorstellungen",
    "akute krise", "psychiatrischer notfall",
    "panic attack", "severe panic", "psychotic", "hallucinations", "hearing voices",
    "delusions", "nervous breakdown", "psychiatric emergency", "mental breakdown",
]

PALPITATIONS_KEYWORDS = [
    "herzrasen extrem", "herz rast unkontrolliert", "herzrhythmusstörung",
    "herzrhythmusstorung", "arrhythmie", "herzstolpern stark", "starkes herzstolpern",
    "puls über 150", "puls uber 150", "puls sehr schnell", "herzjagen",
    "heart racing uncontrollably", "severe palpitations", "arrhythmia",
    "irregular heartbeat severe", "heart rate over 150", "tachycardia severe",
]

NEUROLOGICAL_KEYWORDS = [
    "schlaganfall", "lähmung", "lahmung", "gesichtslähmung", "gesichtslahmung",
    "plötzliche lähmung", "plotzliche lahmung", "sprachstörung plötzlich",
    "sprachstorung plotzlich", "sehstörung plötzlich", "sehstorung plotzlich",
    "kribbeln halbseitig", "halbseitiges kribbeln", "taubheit halbseitig",
    "halbseitige taubheit", "kann nicht sprechen", "kann plötzlich nicht sprechen",
    "kann plotzlich nicht sprechen", "koordinationsverlust",
    "stroke", "paralysis", "facial droop", "sudden speech difficulty",
    "sudden vision loss", "one-sided numbness", "one-sided weakness",
    "cannot speak suddenly", "loss of coordination",
]

UNCONTROLLED_KEYWORDS = [
    "notfall", "akute gefahr", "unerträglich", "unertraglich", "unkontrollierbar",
    "sofort hilfe", "dringend hilfe", "notaufnahme", "krankenwagen", "rettungsdienst",
    "emergency", "acute danger", "unbearable", "uncontrollable", "immediate help",
    "urgent help", "emergency room", "ambulance",
]

INTAKE_RULES = [
    _red_flag("CHEST_PAIN", "Brustschmerz", EscalationLevel.B, CHEST_PAIN_KEYWORDS, CHEST_PAIN_DENIALS),
    _red_flag("SYNCOPE", "Synkope", EscalationLevel.B, SYNCOPE_KEYWORDS,
              ["keine ohnmacht", "keine synkope", "no syncope", "no fainting"]),
    _red_flag("SEVERE_DYSPNEA", "Schwere Atemnot", EscalationLevel.A, DYSPNEA_KEYWORDS,
              ["keine atemnot", "keine luftnot", "no shortness of breath"]),
    _red_flag("SUICIDAL_IDEATION", "Suizidale Gedanken", EscalationLevel.A, SUICIDAL_KEYWORDS,
              ["kein suizid", "keine suizidgedanken", "no suicidal"]),
    _red_flag("ACUTE_PSYCHIATRIC_CRISIS", "Akute psychische Krise", EscalationLevel.B,
              PSYCHIATRIC_CRISIS_KEYWORDS),
    _red_flag("SEVERE_PALPITATIONS", "Ausgepraegte Palpitationen", EscalationLevel.B,
              PALPITATIONS_KEYWORDS, ["kein herzrasen", "keine palpitationen", "no palpitations"]),
    _red_flag("ACUTE_NEUROLOGICAL", "Akute neurologische Ausfaelle", EscalationLevel.A,
              NEUROLOGICAL_KEYWORDS),
    _red_flag("SEVERE_UNCONTROLLED_SYMPTOMS", "Schwere unkontrollierbare Symptome",
              EscalationLevel.A, UNCONTROLLED_KEYWORDS),
    CatalogRule(
        key="CHEST_PAIN_PROLONGED",
        title="Brustschmerz seit >= 20 Minuten",
        kind=RuleKind.INTAKE_SAFETY,
        level=EscalationLevel.A,
        action=FindingAction.BLOCK,
        logic={
            "type": "numeric_range",
            "field": "history_of_present_illness.duration",
            "parser": "duration_minutes",
            "min_value": 20,
            "fire_inside": True,
            "requires_keywords": CHEST_PAIN_KEYWORDS,
        },
    ),
    CatalogRule(
        key="UNCERTAINTY_HIGH",
        title="Mehrere Unsicherheiten",
        kind=RuleKind.INTAKE_SAFETY,
        level=EscalationLevel.C,
        action=FindingAction.INFORM,
        logic={
            "type": "numeric_range",
            "field": "uncertainties",
            "parser": "count",
            "min_value": 2,
            "fire_inside": True,
            "fallback": True,
        },
    ),
]


# =============================================================================
# CONTENT VALIDATION
# =============================================================================

CONTENT_RULES = [
    CatalogRule(
        key="contraindication-high-stress-vigorous-exercise",
        title="Vigorous exercise with critical stress",
        kind=RuleKind.CONTENT_VALIDATION,
        level=ValidationSeverity.WARNING,
        action=FindingAction.REVIEW,
        logic={
            "type": "co_occurrence",
            "signals": ["critical", "high_stress", "stress_critical"],
            "keywords": ["vigorous exercise", "intensive training", "high-intensity", "hiit"],
        },
    ),
    CatalogRule(
        key="contraindication-sleep-deprivation-stimulants",
        title="Stimulants with sleep deprivation",
        kind=RuleKind.CONTENT_VALIDATION,
        level=ValidationSeverity.WARNING,
        action=FindingAction.REVIEW,
        logic={
            "type": "co_occurrence",
            "signals": ["poor_sleep", "sleep_deprivation", "insomnia"],
            "keywords": ["caffeine", "energy drinks", "stimulant", "coffee"],
        },
    ),
    CatalogRule(
        key="plausibility-contradictory-risk-level",
        title="Contradictory risk level statements",
        kind=RuleKind.CONTENT_VALIDATION,
        level=ValidationSeverity.CRITICAL,
        action=FindingAction.BLOCK,
        logic={
            "type": "contradiction",
            "first": ["low risk", "minimal risk"],
            "second": ["high risk", "critical risk", "severe"],
            "whole_word": True,
        },
    ),
    CatalogRule(
        key="plausibility-unrealistic-score-claims",
        title="Unrealistic or absolute claims",
        kind=RuleKind.CONTENT_VALIDATION,
        level=ValidationSeverity.CRITICAL,
        action=FindingAction.BLOCK,
        logic={
            "type": "keyword",
            "keywords": ["100%", "guarantee", "cure", "eliminate", "completely resolve"],
            "whole_word": True,
        },
    ),
    CatalogRule(
        key="out-of-bounds-risk-score",
        title="Risk score outside 0-100",
        kind=RuleKind.CONTENT_VALIDATION,
        level=ValidationSeverity.CRITICAL,
        action=FindingAction.BLOCK,
        logic={
            "type": "numeric_range",
            "field": "riskScore",
            "min_value": 0,
            "max_value": 100,
        },
    ),
    CatalogRule(
        key="safety-no-diagnosis-claims",
        title="Diagnosis claims",
        kind=RuleKind.CONTENT_VALIDATION,
        level=ValidationSeverity.CRITICAL,
        action=FindingAction.BLOCK,
        logic={
            "type": "keyword",
            "keywords": [
                "you have been diagnosed", "you are diagnosed with", "diagnosis:",
                "medical diagnosis", "clinical diagnosis",
            ],
        },
    ),
    CatalogRule(
        key="safety-no-medication-prescription",
        title="Medication prescription language",
        kind=RuleKind.CONTENT_VALIDATION,
        level=ValidationSeverity.CRITICAL,
        action=FindingAction.BLOCK,
        logic={
            "type": "keyword",
            "keywords": ["prescribe", "prescription for", "take medication", "start taking", "dosage of"],
        },
    ),
]

BUILTIN_RULES: list[CatalogRule] = INTAKE_RULES + CONTENT_RULES
