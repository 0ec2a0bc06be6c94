"""Unit tests for construction-text normalization and fuzzy matching."""

from __future__ import annotations

from plansearch.utils.text_normalizer import (
    correct_technical_terms,
    format_bullets,
    fuzzy_match,
    normalize_whitespace,
    preprocess_technical_text,
    standardize_code_references,
    standardize_measurements,
)


class TestNormalizeWhitespace:
    def test_collapses_spaces_and_tabs(self) -> None:
        assert normalize_whitespace("ROOM\t 101   LOBBY") == "ROOM 101 LOBBY"

    def test_keeps_single_line_breaks(self) -> None:
        assert normalize_whitespace("FLOOR PLAN\nSCALE 1/4\"") == "FLOOR PLAN\nSCALE 1/4\""

    def test_collapses_blank_line_runs(self) -> None:
        assert normalize_whitespace("A\n\n\n\n\nB") == "A\n\nB"

    def test_normalizes_carriage_returns(self) -> None:
        assert normalize_whitespace("A\r\nB\rC") == "A\nB\nC"

    def test_empty(self) -> None:
        assert normalize_whitespace("") == ""


class TestStandardizeMeasurements:
    def test_feet_inches(self) -> None:
        assert standardize_measurements("Wall height 9' 6\"") == "Wall height 9'-6\""

    def test_fractional_inches(self) -> None:
        assert standardize_measurements('Slab 1-1/2" thick') == 'Slab 1.5" thick'

    def test_unit_spacing(self) -> None:
        assert standardize_measurements("3000 psi at 50 mm cover") == "3000psi at 50mm cover"

    def test_already_canonical_unchanged(self) -> None:
        assert standardize_measurements("12'-6\"") == "12'-6\""


class TestStandardizeCodeReferences:
    def test_standard_designation(self) -> None:
        assert standardize_code_references("per ASTM C 150") == "per ASTM C150"

    def test_section_abbreviation(self) -> None:
        assert standardize_code_references("see Sec. 4.2.1") == "see Section 4.2.1"
        assert standardize_code_references("see sect 10.3") == "see Section 10.3"


class TestCorrectTechnicalTerms:
    def test_fixes_ocr_misreads(self) -> None:
        text = "Relnforced concreie with structurai sieel"
        assert correct_technical_terms(text) == "reinforced concrete with structural steel"

    def test_leaves_correct_words(self) -> None:
        assert correct_technical_terms("reinforced concrete") == "reinforced concrete"


class TestFormatBullets:
    def test_dash_and_star_bullets(self) -> None:
        assert format_bullets("- first\n* second") == "• first\n• second"

    def test_negative_value_is_not_a_bullet(self) -> None:
        assert format_bullets("-10 F minimum") == "-10 F minimum"


class TestPreprocessTechnicalText:
    def test_full_chain(self) -> None:
        raw = "GENERAL NOTES\n\n\n\n- Concreie per ASTM C 33\n- Cover   50 mm"
        result = preprocess_technical_text(raw)
        assert result == "GENERAL NOTES\n\n• concrete per ASTM C33\n• Cover 50mm"

    def test_empty(self) -> None:
        assert preprocess_technical_text("") == ""


class TestFuzzyMatch:
    def test_misspelling_matches(self) -> None:
        result = fuzzy_match("structual", ["architectural", "structural", "electrical"])
        assert result is not None
        assert result[0] == "structural"
        assert 0.8 <= result[1] <= 1.0

    def test_no_match_below_threshold(self) -> None:
        assert fuzzy_match("landscape", ["plan", "section"]) is None

    def test_empty_inputs(self) -> None:
        assert fuzzy_match("", ["plan"]) is None
        assert fuzzy_match("plan", []) is None
