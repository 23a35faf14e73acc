"""
Response classifier: maps a spoken answer to a 1-5 agreement value.

Tiers are checked in order and the first match wins:

    1. empty transcript            -> 3
    2. strong agreement            -> 5
    3. strong disagreement         -> 1
    4. agreement                   -> 4
    5. disagreement                -> 2
    6. neutral / uncertainty       -> 3
    7. fallback heuristics         -> 2 (short negation) or 4 (positive affect)
    8. default                     -> 3

Strong markers overlap regular ones ("me encanta" vs "me gusta"), so tiers
2/3 must run before 4/5. Agreement markers are discarded when a negation word
appears within the three words before them, or when "que no" / "not" closes the
clause right after them.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Sequence

logger = logging.getLogger(__name__)

NEUTRAL_VALUE = 3

# Words that flip the meaning of an agreement marker that follows them
NEGATION_WORDS = frozenset({
    "no", "ni", "nunca", "jamás", "tampoco", "nada",
    "not", "never", "don't", "dont", "doesn't", "doesnt", "didn't", "isn't",
    "nope", "nah",
})
NEGATION_WINDOW = 3
SHORT_UTTERANCE_CHARS = 10

_WORD_RE = re.compile(r"[\w']+")
# "sí que no", "sure, not": negation closing the clause right after a marker
_TRAILING_NEGATION_RE = re.compile(r"\s*,?\s*(que\s+no|not)\b(?=\s*(?:[.,;!?]|$))", re.IGNORECASE)


def _compile(patterns: Sequence[str]) -> List[Pattern[str]]:
    return [re.compile(pattern, re.IGNORECASE) for pattern in patterns]


@dataclass(frozen=True)
class MarkerLexicon:
    """Regex markers for each classification tier."""

    strong_agreement: List[Pattern[str]] = field(default_factory=list)
    strong_disagreement: List[Pattern[str]] = field(default_factory=list)
    agreement: List[Pattern[str]] = field(default_factory=list)
    disagreement: List[Pattern[str]] = field(default_factory=list)
    neutral: List[Pattern[str]] = field(default_factory=list)
    positive_affect: List[Pattern[str]] = field(default_factory=list)


SPANISH_ENGLISH_LEXICON = MarkerLexicon(
    strong_agreement=_compile([
        r"\b(me encantan?|me fascinan?|me apasionan?|amo|adoro|es lo mío)\b",
        r"\b(totalmente de acuerdo|completamente de acuerdo|muy de acuerdo|exactamente)\b",
        r"\b(muchísimo|extremadamente|absolutamente(?!\s+no\b))\b",
        r"(?<!\bcasi )\bsiempre\b",
        r"\b(perfecto|excelente|increíble|fantástico)\b",
        r"\b(love|adore|strongly agree|totally agree|completely agree)\b",
        r"\b(absolutely(?!\s+not\b)|definitely yes)\b",
        r"(?<!\balmost )\balways\b",
    ]),
    strong_disagreement=_compile([
        r"\b(odio|detesto|aborrezco|me repugnan?|me horrorizan?)\b",
        r"(?<!\bcasi )\b(nunca|jamás)\b",
        r"\b(para nada|en absoluto|no me gustan? nada|no me interesan? nada)\b",
        r"\b(claro que no|por supuesto que no|desde luego que no|definitivamente no)\b",
        r"\b(totalmente en desacuerdo|completamente en desacuerdo|totalmente en contra)\b",
        r"\b(horrible|terrible|pésimo|muy mal)\b",
        r"\b(hate|detest|can't stand|strongly disagree|absolutely not|not at all)\b",
        r"\b(definitely not|certainly not|of course not)\b",
        r"(?<!\balmost )\bnever\b",
    ]),
    agreement=_compile([
        r"\b(sí|si|claro|por supuesto|definitivamente|correcto|exacto|cierto)\b",
        r"\b(estoy de acuerdo|de acuerdo)\b",
        r"\b(me gustan?|me interesan?|me atraen?|está bien)\b",
        r"\b(frecuentemente|a menudo|mucho|bastante|casi siempre)\b",
        r"\b(yes|yeah|yep|sure|agree|of course|i like|like it|often|usually|frequently|almost always)\b",
    ]),
    disagreement=_compile([
        r"\b(no me gustan?|no me interesan?|no me atraen?|me disgustan?|no estoy de acuerdo)\b",
        r"\b(raramente|casi nunca|muy poco|pocas veces|rara vez)\b",
        r"\b(no mucho|no tanto|no realmente)\b",
        r"(?<!\bni )\bno\b(?!\s+(sé|se|lo sé|estoy segur[oa])\b)",
        r"\b(disagree|don't like|do not like|not really|not much|rarely|seldom|hardly ever|almost never)\b",
        r"^(nope|nah)\b",
    ]),
    neutral=_compile([
        r"\b(tal vez|quizás?|no sé|no lo sé|no estoy segur[oa]|más o menos|regular|normal|neutral)\b",
        r"\b(a veces|de vez en cuando|ocasionalmente|depende|puede ser)\b",
        r"\b(ni sí ni no|término medio|moderadamente)\b",
        r"\b(maybe|perhaps|not sure|sometimes|it depends|occasionally|i don't know|so so|kind of)\b",
    ]),
    positive_affect=_compile([
        r"\b(gust\w*|interes\w*|bien|divertid[oa]|bonit[oa]|chévere|genial)\b",
        r"\b(good|nice|fun|interesting|cool|enjoy|like)\b",
    ]),
)


def _is_negated(text: str, start: int, end: int) -> bool:
    """True if a negation word occurs in the few words before start, or right after end."""
    preceding = _WORD_RE.findall(text[:start])[-NEGATION_WINDOW:]
    if any(word in NEGATION_WORDS for word in preceding):
        return True
    return _TRAILING_NEGATION_RE.match(text, end) is not None


class ResponseClassifier:
    """
    Tiered lexical classifier for Likert answers.

    Pure: the same transcript always yields the same value.
    """

    def __init__(self, lexicon: Optional[MarkerLexicon] = None):
        self.lexicon = lexicon or SPANISH_ENGLISH_LEXICON

    def classify(self, transcript: Optional[str]) -> int:
        """
        Map a finished transcript to a value in {1, 2, 3, 4, 5}.

        Args:
            transcript: Final transcript of the Listening phase

        Returns:
            Agreement value (5 strongly agree ... 1 strongly disagree)
        """
        text = (transcript or "").strip().lower()
        if not text:
            return NEUTRAL_VALUE

        lexicon = self.lexicon
        tiers = (
            (lexicon.strong_agreement, 5, True),
            (lexicon.strong_disagreement, 1, False),
            (lexicon.agreement, 4, True),
            (lexicon.disagreement, 2, False),
            (lexicon.neutral, NEUTRAL_VALUE, False),
        )
        for patterns, value, negatable in tiers:
            if self._matches(text, patterns, negatable):
                logger.debug(f"Classified '{text[:40]}' as {value}")
                return value

        words = _WORD_RE.findall(text)
        if len(text) < SHORT_UTTERANCE_CHARS and any(word in NEGATION_WORDS for word in words):
            return 2
        if self._matches(text, lexicon.positive_affect, negatable=True):
            return 4

        return NEUTRAL_VALUE

    @staticmethod
    def _matches(text: str, patterns: Sequence[Pattern[str]], negatable: bool) -> bool:
        for pattern in patterns:
            for match in pattern.finditer(text):
                if negatable and _is_negated(text, match.start(), match.end()):
                    continue
                return True
        return False


_default_classifier = ResponseClassifier()


def classify(transcript: Optional[str]) -> int:
    """Classify with the default Spanish/English lexicon."""
    return _default_classifier.classify(transcript)


RESPONSE_DESCRIPTIONS = {
    1: "Totalmente en desacuerdo",
    2: "En desacuerdo",
    3: "Neutral",
    4: "De acuerdo",
    5: "Totalmente de acuerdo",
}


def describe_response(value: int) -> str:
    """Likert label for a response value."""
    return RESPONSE_DESCRIPTIONS.get(value, "Respuesta inválida")
