# Structural repetition heuristics for chat responses.
#
# Turns each response into per-axis fingerprints (sentence rhythm, opening shape,
# paragraph shape, dialogue balance), tallies them across a window of recent
# responses, and reports the fingerprints that recur at least `threshold` times.

from __future__ import annotations

import math
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Literal, Sequence

# ---------------------------------------------------------------------------
# Hyperparameters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Hyperparameters:
    """Tunable thresholds used by the extractors, aggregator, and admission filter."""

    short_sentence_max_words: int = 5
    long_sentence_min_words: int = 16
    min_sentence_chars: int = 5
    rhythm_prefix_len: int = 3
    rhythm_min_len: int = 2
    mean_length_bucket: int = 5

    opening_short_max_words: int = 5
    opening_medium_max_words: int = 12
    filler_openers: frozenset[str] = field(
        default_factory=lambda: frozenset(
            {"well", "so", "ah", "oh", "yes", "no", "perhaps", "indeed", "certainly", "hmm"}
        )
    )

    min_paragraphs: int = 2
    min_window_samples: int = 3

    min_text_chars: int = 10
    debounce_seconds: float = 1.0


DEFAULT_HYPERPARAMETERS = Hyperparameters()

Axis = Literal["rhythm", "opening", "paragraph", "dialogue"]
AXES: tuple[Axis, ...] = ("rhythm", "opening", "paragraph", "dialogue")

# ---------------------------------------------------------------------------
# Sensitivity
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SensitivityPolicy:
    level: int
    name: str
    window_size: int
    threshold: int


SENSITIVITY_LEVELS: dict[int, SensitivityPolicy] = {
    1: SensitivityPolicy(level=1, name="low", window_size=7, threshold=4),
    2: SensitivityPolicy(level=2, name="medium", window_size=5, threshold=3),
    3: SensitivityPolicy(level=3, name="high", window_size=4, threshold=2),
}
DEFAULT_SENSITIVITY = 2

_SENSITIVITY_NAMES = {policy.name: level for level, policy in SENSITIVITY_LEVELS.items()}


def resolve_sensitivity(level: int | str | None) -> SensitivityPolicy:
    """Map a sensitivity level (1-3 or low/medium/high) to its window policy.

    Anything unrecognised resolves to the medium policy.
    """
    if isinstance(level, str):
        key = level.strip().lower()
        if key in _SENSITIVITY_NAMES:
            return SENSITIVITY_LEVELS[_SENSITIVITY_NAMES[key]]
        level = int(key) if key.isdigit() else None
    if isinstance(level, bool):
        level = None
    return SENSITIVITY_LEVELS.get(level, SENSITIVITY_LEVELS[DEFAULT_SENSITIVITY])


# ---------------------------------------------------------------------------
# Fingerprints
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SentenceRhythm:
    pattern: str
    rhythm: str
    mean_words: int


@dataclass(frozen=True)
class OpeningSignature:
    signature: str
    first_word: str
    uses_filler: bool


@dataclass(frozen=True)
class ParagraphShape:
    shape: str
    paragraph_count: int


@dataclass(frozen=True)
class DialogueBalance:
    style: Literal["dialogue-heavy", "narrative-heavy"]
    dialogue_lines: int
    narrative_lines: int


@dataclass(frozen=True)
class DetectedPattern:
    axis: Axis
    kind: str
    value: str
    count: int
    description: str

    def to_payload(self) -> dict[str, object]:
        return {
            "type": "DetectedPattern",
            "axis": self.axis,
            "kind": self.kind,
            "value": self.value,
            "count": self.count,
            "description": self.description,
        }


# ---------------------------------------------------------------------------
# Compiled patterns
# ---------------------------------------------------------------------------

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_QUOTE_CHARS = "\"“”„«»"
_LEADING_QUOTE_RE = re.compile(r"^[" + _QUOTE_CHARS + r"']")
_QUOTE_RE = re.compile(r"[" + _QUOTE_CHARS + r"]")
_WORD_STRIP_RE = re.compile(r"[^a-z']")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _split_sentences(text: str, hp: Hyperparameters) -> list[str]:
    return [s.strip() for s in _SENTENCE_SPLIT_RE.split(text) if len(s.strip()) > hp.min_sentence_chars]


def _size_class(word_count: int, hp: Hyperparameters) -> str:
    if word_count <= hp.short_sentence_max_words:
        return "S"
    if word_count >= hp.long_sentence_min_words:
        return "L"
    return "M"


def _length_bucket(word_count: int, hp: Hyperparameters) -> str:
    if word_count <= 1:
        return "single"
    if word_count <= hp.opening_short_max_words:
        return "short"
    if word_count <= hp.opening_medium_max_words:
        return "medium"
    return "long"


def _punctuation_class(line: str) -> str:
    if _LEADING_QUOTE_RE.match(line):
        return "dialogue"
    # Closing quotes after the terminator: He said "yes."
    tail = line.rstrip(_QUOTE_CHARS + "'’ ")
    if tail.endswith("?"):
        return "question"
    if tail.endswith("!"):
        return "exclamation"
    if tail.endswith(".") and not tail.endswith(".."):
        return "statement"
    return "incomplete"


def _tally(values: Iterable[str]) -> Counter[str]:
    # Counter keeps first-insertion order, which is the discovery order we report in.
    return Counter(values)


# ---------------------------------------------------------------------------
# Feature extractors
# ---------------------------------------------------------------------------


def extract_sentence_rhythm(text: str, hyperparameters: Hyperparameters | None = None) -> SentenceRhythm | None:
    """Classify each sentence as Short/Medium/Long by word count.

    Returns None when no sentence survives the fragment filter.
    """
    hp = hyperparameters or DEFAULT_HYPERPARAMETERS
    sentences = _split_sentences(text, hp)
    if not sentences:
        return None
    lengths = [len(s.split()) for s in sentences]
    pattern = "".join(_size_class(n, hp) for n in lengths)
    return SentenceRhythm(
        pattern=pattern,
        rhythm=pattern[: hp.rhythm_prefix_len],
        mean_words=_round_half_up(sum(lengths) / len(lengths)),
    )


def extract_opening_signature(text: str, hyperparameters: Hyperparameters | None = None) -> OpeningSignature | None:
    """Fingerprint the first non-empty line: length bucket, punctuation class, filler opener."""
    hp = hyperparameters or DEFAULT_HYPERPARAMETERS
    first_line = next((line.strip() for line in text.split("\n") if line.strip()), None)
    if first_line is None:
        return None
    words = first_line.split()
    first_word = _WORD_STRIP_RE.sub("", words[0].lower()).strip("'")
    return OpeningSignature(
        signature=f"{_length_bucket(len(words), hp)}-{_punctuation_class(first_line)}",
        first_word=first_word,
        uses_filler=first_word in hp.filler_openers,
    )


def extract_paragraph_shape(text: str, hyperparameters: Hyperparameters | None = None) -> ParagraphShape | None:
    hp = hyperparameters or DEFAULT_HYPERPARAMETERS
    paragraphs = [p for p in _PARAGRAPH_SPLIT_RE.split(text) if p.strip()]
    if len(paragraphs) < hp.min_paragraphs:
        return None
    counts = [len(_split_sentences(p, hp)) for p in paragraphs]
    return ParagraphShape(shape="-".join(str(c) for c in counts), paragraph_count=len(paragraphs))


def extract_dialogue_balance(text: str, hyperparameters: Hyperparameters | None = None) -> DialogueBalance | None:
    """Compare quoted lines against plain narrative lines. None if nothing is quoted."""
    lines = [line for line in text.split("\n") if line.strip()]
    dialogue = sum(1 for line in lines if _QUOTE_RE.search(line))
    if dialogue == 0:
        return None
    narrative = len(lines) - dialogue
    return DialogueBalance(
        style="dialogue-heavy" if dialogue > narrative else "narrative-heavy",
        dialogue_lines=dialogue,
        narrative_lines=narrative,
    )


# ---------------------------------------------------------------------------
# Aggregation: one function per axis, each returns findings in discovery order
# ---------------------------------------------------------------------------


def _emit(axis: Axis, kind: str, counts: Counter[str], threshold: int, describe) -> list[DetectedPattern]:
    return [
        DetectedPattern(axis=axis, kind=kind, value=value, count=count, description=describe(value))
        for value, count in counts.items()
        if count >= threshold
    ]


def _aggregate_rhythm(window: Sequence[str], threshold: int, hp: Hyperparameters) -> list[DetectedPattern]:
    features = [f for f in (extract_sentence_rhythm(t, hp) for t in window) if f is not None]
    rhythms = _tally(f.rhythm for f in features if len(f.rhythm) >= hp.rhythm_min_len)
    buckets = _tally(str((f.mean_words // hp.mean_length_bucket) * hp.mean_length_bucket) for f in features)
    width = hp.mean_length_bucket - 1
    return _emit(
        "rhythm", "rhythm", rhythms, threshold,
        lambda v: f"Repeated sentence rhythm: {'-'.join(v)}",
    ) + _emit(
        "rhythm", "mean_length", buckets, threshold,
        lambda v: f"Average sentence length of {v}-{int(v) + width} words",
    )


def _aggregate_opening(window: Sequence[str], threshold: int, hp: Hyperparameters) -> list[DetectedPattern]:
    features = [f for f in (extract_opening_signature(t, hp) for t in window) if f is not None]
    signatures = _tally(f.signature for f in features)
    filler_words = _tally(f.first_word for f in features if f.uses_filler)
    return _emit(
        "opening", "opening_signature", signatures, threshold,
        lambda v: f"Repeated opening shape: {v}",
    ) + _emit(
        "opening", "opening_word", filler_words, threshold,
        lambda v: f'Repeated opening word: "{v}"',
    )


def _aggregate_paragraph(window: Sequence[str], threshold: int, hp: Hyperparameters) -> list[DetectedPattern]:
    features = [f for f in (extract_paragraph_shape(t, hp) for t in window) if f is not None]
    shapes = _tally(f.shape for f in features if f.paragraph_count > 1)
    return _emit(
        "paragraph", "paragraph_shape", shapes, threshold,
        lambda v: f"Repeated paragraph structure: {v} sentences per paragraph",
    )


def _aggregate_dialogue(window: Sequence[str], threshold: int, hp: Hyperparameters) -> list[DetectedPattern]:
    features = [f for f in (extract_dialogue_balance(t, hp) for t in window) if f is not None]
    styles = _tally(f.style for f in features)
    return _emit(
        "dialogue", "dialogue_balance", styles, threshold,
        lambda v: f"Consistently {v} responses",
    )


_AGGREGATORS = {
    "rhythm": _aggregate_rhythm,
    "opening": _aggregate_opening,
    "paragraph": _aggregate_paragraph,
    "dialogue": _aggregate_dialogue,
}

# ---------------------------------------------------------------------------
# Alert formatting
# ---------------------------------------------------------------------------

ALERT_TITLE = "Repetitive AI patterns detected"
ALERT_PREAMBLE = "The AI may be falling into repetitive patterns:"
ALERT_POSTAMBLE = "Consider asking for more varied responses or adjusting the prompt."


@dataclass(frozen=True)
class AlertPayload:
    title: str
    body: str
    patterns: tuple[DetectedPattern, ...]

    def to_payload(self) -> dict[str, object]:
        return {
            "title": self.title,
            "body": self.body,
            "patterns": [p.to_payload() for p in self.patterns],
        }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def aggregate(
    window: Sequence[str],
    enabled_axes: Iterable[str],
    threshold: int,
    hyperparameters: Hyperparameters | None = None,
) -> list[DetectedPattern]:
    """Tally fingerprints across the window and report those seen ``threshold`` times or more.

    Args:
        window: Recent responses, oldest first.
        enabled_axes: Any subset of ``AXES``. Findings are always reported in ``AXES`` order.
        threshold: Minimum occurrence count for a fingerprint to be reported.
        hyperparameters: Optional tuning overrides.

    Returns:
        A list of DetectedPattern, empty when the window holds fewer than
        ``min_window_samples`` responses.
    """
    hp = hyperparameters or DEFAULT_HYPERPARAMETERS
    if len(window) < hp.min_window_samples:
        return []
    enabled = set(enabled_axes)
    patterns: list[DetectedPattern] = []
    for axis in AXES:
        if axis in enabled:
            patterns.extend(_AGGREGATORS[axis](window, threshold, hp))
    return patterns


def format_alert(patterns: Sequence[DetectedPattern]) -> str | None:
    """Render findings as a bulleted message, or None when there is nothing to report."""
    if not patterns:
        return None
    bullets = [f"• {p.description} ({p.count} times)" for p in patterns]
    return "\n".join([ALERT_PREAMBLE, *bullets, ALERT_POSTAMBLE])


def build_alert(patterns: Sequence[DetectedPattern]) -> AlertPayload | None:
    body = format_alert(patterns)
    if body is None:
        return None
    return AlertPayload(title=ALERT_TITLE, body=body, patterns=tuple(patterns))
