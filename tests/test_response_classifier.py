"""
Unit tests for the response classifier.

Tests tier order, negation handling and the neutral fallback.
"""

import pytest
from vocational_voice.orchestration.response_classifier import (
    ResponseClassifier,
    classify,
    describe_response,
)


class TestRequiredOutcomes:
    """Test the canonical answers."""

    def test_strong_agreement(self):
        """Test 'sí, me encanta' is strong agreement."""
        assert classify("sí, me encanta") == 5

    def test_negated_liking(self):
        """Test 'no me gusta' is disagreement, not agreement."""
        assert classify("no me gusta") == 2

    def test_maybe(self):
        """Test 'tal vez' is neutral."""
        assert classify("tal vez") == 3

    @pytest.mark.parametrize("transcript", ["", "   ", None])
    def test_empty(self, transcript):
        """Test empty transcripts fall back to neutral."""
        assert classify(transcript) == 3


class TestTiers:
    """Test each tier and their precedence."""

    @pytest.mark.parametrize("transcript", [
        "me encanta",
        "ME FASCINA trabajar con animales",
        "totalmente de acuerdo",
        "siempre",
        "I love it",
        "absolutely",
    ])
    def test_strong_agreement_markers(self, transcript):
        """Test strong agreement markers map to 5."""
        assert classify(transcript) == 5

    @pytest.mark.parametrize("transcript", [
        "odio eso",
        "nunca",
        "para nada",
        "no me gusta nada",
        "absolutely not",
        "I hate it",
    ])
    def test_strong_disagreement_markers(self, transcript):
        """Test strong disagreement markers map to 1."""
        assert classify(transcript) == 1

    @pytest.mark.parametrize("transcript", ["sí", "claro", "me gusta", "casi siempre", "yes", "sure"])
    def test_agreement_markers(self, transcript):
        """Test regular agreement markers map to 4."""
        assert classify(transcript) == 4

    @pytest.mark.parametrize("transcript", ["no", "casi nunca", "rara vez", "I don't like it", "nah"])
    def test_disagreement_markers(self, transcript):
        """Test regular disagreement markers map to 2."""
        assert classify(transcript) == 2

    @pytest.mark.parametrize("transcript", ["a veces", "no sé", "depende", "maybe", "not sure"])
    def test_neutral_markers(self, transcript):
        """Test uncertainty maps to 3."""
        assert classify(transcript) == 3

    @pytest.mark.parametrize("transcript", [
        "claro que no",
        "por supuesto que no",
        "definitely not",
        "of course not",
    ])
    def test_emphatic_refusal(self, transcript):
        """Test an agreement word turned into an emphatic refusal maps to 1."""
        assert classify(transcript) == 1

    @pytest.mark.parametrize("transcript", ["sí que no", "sure, not"])
    def test_agreement_closed_by_negation(self, transcript):
        """Test an agreement marker followed by a closing negation is not agreement."""
        assert classify(transcript) == 2

    def test_agreement_with_later_negation_is_kept(self):
        """Test a negation later in the sentence does not cancel the marker."""
        assert classify("claro, que no falte la música") == 4

    def test_strong_before_regular(self):
        """Test a transcript with both strong and regular markers resolves to strong."""
        assert classify("sí, me gusta muchísimo") == 5


class TestFallback:
    """Test the heuristics used when no marker matches."""

    def test_positive_affect(self):
        """Test an unmarked positive word maps to 4."""
        assert classify("es divertido") == 4

    def test_unmatched_defaults_to_neutral(self):
        """Test unrelated speech maps to 3."""
        assert classify("el cielo es azul") == 3

    def test_deterministic(self):
        """Test the classifier is pure."""
        classifier = ResponseClassifier()
        assert classifier.classify("me gusta") == classifier.classify("me gusta")


class TestDescribeResponse:
    """Test Likert labels."""

    def test_labels(self):
        """Test each value has its Spanish label."""
        assert describe_response(1) == "Totalmente en desacuerdo"
        assert describe_response(3) == "Neutral"
        assert describe_response(5) == "Totalmente de acuerdo"

    def test_invalid(self):
        """Test out-of-range values are labelled invalid."""
        assert describe_response(0) == "Respuesta inválida"
