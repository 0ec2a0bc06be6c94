"""Text normalization for extracted construction-document text.

This module handles three normalization concerns:

1. **Layout cleanup** -- Collapses runs of spaces and blank lines left by
   PDF text extraction while keeping line starts intact, because the
   chunker detects headings at the start of a line.

2. **Technical standardization** -- Rewrites measurements (``2' 6"`` ->
   ``2'-6"``, ``50 mm`` -> ``50mm``), code references (``ASTM C 90`` ->
   ``ASTM C90``, ``Sec. 4.2`` -> ``Section 4.2``) and bullet markers into
   one canonical form so that the same fact embeds the same way wherever
   it appears in a drawing set.

3. **OCR term correction** -- Fixes systematic misreads of common
   construction vocabulary (``relnforced`` -> ``reinforced``).

:func:`fuzzy_match` exposes rapidfuzz matching for callers that need to
map free-form labels onto a closed vocabulary.
"""

import re
from fractions import Fraction

from rapidfuzz import fuzz, process


# ------------------------------------------------------------------
# Layout cleanup
# ------------------------------------------------------------------

def normalize_whitespace(text: str) -> str:
    """Collapse horizontal whitespace and runs of blank lines.

    Line breaks are preserved; three or more consecutive newlines become
    a single paragraph break.  Trailing spaces are stripped from every line.
    """
    if not text:
        return ""

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = text.replace("\t", " ").replace(" ", " ")
    text = re.sub(r"[ ]{2,}", " ", text)
    text = "\n".join(line.rstrip() for line in text.split("\n"))
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


# ------------------------------------------------------------------
# Measurements
# ------------------------------------------------------------------

_FRACTIONAL_INCH_RE = re.compile(r"(\d+)-(\d+)/(\d+)\"")
_FEET_INCHES_RE = re.compile(r"(\d+)'\s+(\d+)\"")
_UNIT_SPACING_RE = re.compile(r"(\d+)\s+(mm|cm|ft|psf|psi|ksi|pcf|kg)\b")


def _fraction_to_decimal(match: re.Match[str]) -> str:
    whole, numerator, denominator = (int(g) for g in match.groups())
    if denominator == 0:
        return match.group(0)
    value = whole + Fraction(numerator, denominator)
    # 1-1/2" -> 1.5", 3-1/3" -> 3.333"
    rendered = f"{float(value):.3f}".rstrip("0").rstrip(".")
    return f'{rendered}"'


def standardize_measurements(text: str) -> str:
    """Rewrite dimension strings into a single canonical notation."""
    if not text:
        return ""
    text = _FRACTIONAL_INCH_RE.sub(_fraction_to_decimal, text)
    text = _FEET_INCHES_RE.sub(r"\1'-\2\"", text)
    return _UNIT_SPACING_RE.sub(r"\1\2", text)


# ------------------------------------------------------------------
# Code references
# ------------------------------------------------------------------

_STANDARD_REF_RE = re.compile(r"\b(ASTM|ANSI|ACI|AISI|IBC|IPC|NFPA)\s+([A-Z])\s+(\d+)")
_SECTION_ABBREV_RE = re.compile(r"\b(?:sec|sect)\.?\s+(\d+(?:\.\d+)+)", re.IGNORECASE)


def standardize_code_references(text: str) -> str:
    """Normalise standards designations and abbreviated section references."""
    if not text:
        return ""
    text = _STANDARD_REF_RE.sub(r"\1 \2\3", text)
    return _SECTION_ABBREV_RE.sub(r"Section \1", text)


# ------------------------------------------------------------------
# OCR term correction
# ------------------------------------------------------------------

# Misreads seen in scanned specifications and code books.  Matched as
# whole words, case-insensitively.
_TERM_CORRECTIONS: dict[str, str] = {
    "relnforced": "reinforced",
    "reinforcernent": "reinforcement",
    "concreie": "concrete",
    "concrele": "concrete",
    "structurai": "structural",
    "sieel": "steel",
    "steei": "steel",
    "specificaiions": "specifications",
    "lnsulation": "insulation",
    "lnstallation": "installation",
    "fastenlng": "fastening",
    "foundatlon": "foundation",
    "elevaiion": "elevation",
}

_TERM_CORRECTION_RES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(rf"\b{re.escape(wrong)}\b", re.IGNORECASE), right)
    for wrong, right in _TERM_CORRECTIONS.items()
]


def correct_technical_terms(text: str) -> str:
    """Replace known OCR misreads of construction vocabulary."""
    if not text:
        return ""
    for pattern, replacement in _TERM_CORRECTION_RES:
        text = pattern.sub(replacement, text)
    return text


# "-" and "*" only count as bullets when followed by a space ("-10 F" is a value).
_BULLET_RE = re.compile(r"(?m)^[ ]*(?:[\*\-] |[•⦁◦] ?)")


def format_bullets(text: str) -> str:
    """Render every list bullet at the start of a line as ``"• "``."""
    if not text:
        return ""
    return _BULLET_RE.sub("• ", text)


def preprocess_technical_text(text: str) -> str:
    """Run the full normalization chain used before chunking.

    Order: whitespace, measurements, code references, OCR terms, bullets.
    """
    if not text:
        return ""
    processed = normalize_whitespace(text)
    processed = standardize_measurements(processed)
    processed = standardize_code_references(processed)
    processed = correct_technical_terms(processed)
    return format_bullets(processed)


# ------------------------------------------------------------------
# Fuzzy vocabulary matching
# ------------------------------------------------------------------

def fuzzy_match(
    query: str,
    candidates: list[str],
    threshold: float = 0.8,
) -> tuple[str, float] | None:
    """Find the best fuzzy match for a query among candidates.

    Uses rapidfuzz ``ratio`` so that single-character misspellings
    ("elevaton", "structual") still land on the intended label.

    Args:
        query: The string to match.
        candidates: List of candidate strings to match against.
        threshold: Minimum similarity score (0.0--1.0) to accept a match.

    Returns:
        A (best_match, score) tuple if a match meets the threshold, else None.
    """
    if not query or not candidates:
        return None

    result = process.extractOne(
        query.lower(),
        candidates,
        scorer=fuzz.ratio,
        score_cutoff=threshold * 100,
    )
    if result is None:
        return None

    match_str, score, _ = result
    return (match_str, score / 100.0)
