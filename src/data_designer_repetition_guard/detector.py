from __future__ import annotations

import logging
import re
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Iterator, Mapping

import pandas as pd

from data_designer_repetition_guard.core import (
    ALERT_PREAMBLE,
    ALERT_TITLE,
    DEFAULT_HYPERPARAMETERS,
    DEFAULT_SENSITIVITY,
    AlertPayload,
    Axis,
    Hyperparameters,
    aggregate,
    build_alert,
    resolve_sensitivity,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings snapshot
# ---------------------------------------------------------------------------

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})


def _as_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


@dataclass(frozen=True)
class DetectorSettings:
    """Host-resolved configuration, read fresh on every check."""

    enabled: bool = True
    sensitivity: int = DEFAULT_SENSITIVITY
    check_sentence_structure: bool = True
    check_opening_patterns: bool = True
    check_paragraph_structure: bool = True
    check_dialogue_patterns: bool = True

    @property
    def enabled_axes(self) -> tuple[Axis, ...]:
        flags: list[tuple[Axis, bool]] = [
            ("rhythm", self.check_sentence_structure),
            ("opening", self.check_opening_patterns),
            ("paragraph", self.check_paragraph_structure),
            ("dialogue", self.check_dialogue_patterns),
        ]
        return tuple(axis for axis, on in flags if on)

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> DetectorSettings:
        """Build settings from a host record, accepting snake_case or camelCase keys."""
        defaults = cls()
        values = {}
        for name in ("enabled", "sensitivity", "check_sentence_structure", "check_opening_patterns",
                     "check_paragraph_structure", "check_dialogue_patterns"):
            head, *rest = name.split("_")
            camel = head + "".join(part.title() for part in rest)
            if name in data:
                values[name] = data[name]
            elif camel in data:
                values[name] = data[camel]
            else:
                values[name] = getattr(defaults, name)
        values["sensitivity"] = resolve_sensitivity(values["sensitivity"]).level
        for name in values:
            if name != "sensitivity":
                values[name] = _as_bool(values[name])
        return cls(**values)


# ---------------------------------------------------------------------------
# Admission filter
# ---------------------------------------------------------------------------

_NOISE_PATTERNS = [
    re.compile(
        r"^(analy[sz]ing|loading|generating|thinking|typing|processing)\b[^.!?]{0,40}(?:\.\.\.|…)?$",
        re.IGNORECASE,
    ),
    re.compile(r"\bmanual check\b", re.IGNORECASE),
    re.compile(r"^please give me\b", re.IGNORECASE),
    re.compile(re.escape(ALERT_TITLE), re.IGNORECASE),
    re.compile(re.escape(ALERT_PREAMBLE), re.IGNORECASE),
    # Bare timestamps, dates, and message/record ids.
    re.compile(r"^[\d\s:/.,\-+TZ]+(?:[ap]\.?m\.?)?$", re.IGNORECASE),
    re.compile(r"^#?\s*(?:id|msg|message)?[\s:#-]*[0-9a-f-]{6,}$", re.IGNORECASE),
]


@dataclass(frozen=True)
class AdmissionResult:
    accepted: bool
    reason: str | None = None


class AdmissionFilter:
    """Decides whether an incoming sample is genuine new content worth analysing."""

    def __init__(self, hyperparameters: Hyperparameters | None = None) -> None:
        self._hp = hyperparameters or DEFAULT_HYPERPARAMETERS
        self.last_text: str | None = None
        self.last_time: float | None = None
        self.in_progress = False

    def accept(self, raw: str | None, is_user: bool, now: float) -> AdmissionResult:
        text = (raw or "").strip()
        if len(text) < self._hp.min_text_chars:
            return AdmissionResult(False, "too_short")
        if is_user:
            return AdmissionResult(False, "user_message")
        if self.in_progress:
            return AdmissionResult(False, "busy")
        if text == self.last_text:
            return AdmissionResult(False, "duplicate")
        if self.last_time is not None and now - self.last_time < self._hp.debounce_seconds:
            return AdmissionResult(False, "debounced")
        if any(p.search(text) for p in _NOISE_PATTERNS):
            return AdmissionResult(False, "noise")

        # Recorded before analysis so a re-entrant echo of this text is rejected.
        self.last_text = text
        self.last_time = now
        return AdmissionResult(True)

    @contextmanager
    def processing(self) -> Iterator[None]:
        self.in_progress = True
        try:
            yield
        finally:
            self.in_progress = False

    def reset(self) -> None:
        self.last_text = None
        self.last_time = None


# ---------------------------------------------------------------------------
# History buffer
# ---------------------------------------------------------------------------


class HistoryBuffer:
    """FIFO window of accepted samples; capacity is applied at each push."""

    def __init__(self) -> None:
        self._samples: deque[str] = deque()

    def push(self, sample: str, capacity: int) -> None:
        self._samples.append(sample)
        while len(self._samples) > max(capacity, 0):
            self._samples.popleft()

    def window(self) -> tuple[str, ...]:
        return tuple(self._samples)

    def reset(self) -> None:
        self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------

Notifier = Callable[[AlertPayload], None]
SettingsProvider = Callable[[], DetectorSettings]


class RepetitionDetector:
    """Watches a stream of responses and raises an alert when their structure keeps repeating.

    Each instance owns its own window, so one detector per conversation is fine.

    Args:
        settings_provider: Returns the current settings; called once per check.
        notifier: Receives the alert payload. Failures are logged, never raised.
        hyperparameters: Optional tuning overrides.
        clock: Monotonic time source used when ``now`` is not passed to a check.
    """

    def __init__(
        self,
        settings_provider: SettingsProvider | None = None,
        notifier: Notifier | None = None,
        hyperparameters: Hyperparameters | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings_provider = settings_provider or DetectorSettings
        self._notifier = notifier
        self._hp = hyperparameters or DEFAULT_HYPERPARAMETERS
        self._clock = clock
        self._history = HistoryBuffer()
        self._admission = AdmissionFilter(self._hp)
        self.last_admission: AdmissionResult | None = None

    def check_repetition(self, text: str, is_user: bool = False, now: float | None = None) -> AlertPayload | None:
        settings = self._settings_provider()
        if not settings.enabled:
            self.last_admission = AdmissionResult(False, "disabled")
            return None

        admission = self._admission.accept(text, is_user, self._clock() if now is None else now)
        self.last_admission = admission
        if not admission.accepted:
            logger.debug(f"Sample rejected: {admission.reason}")
            return None

        with self._admission.processing():
            policy = resolve_sensitivity(settings.sensitivity)
            self._history.push(text.strip(), policy.window_size)
            logger.debug(f"Now tracking {len(self._history)} responses (window {policy.window_size})")

            patterns = aggregate(self._history.window(), settings.enabled_axes, policy.threshold, self._hp)
            alert = build_alert(patterns)
            if alert is None:
                return None

            logger.info(f"\U0001f6a8 {len(patterns)} repetitive pattern(s) detected")
            self._deliver(alert)
            return alert

    def _deliver(self, alert: AlertPayload) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier(alert)
        except Exception:
            logger.warning("Alert notifier failed; alert not delivered", exc_info=True)

    def reset(self) -> None:
        """Forget the window and the last-processed sample, e.g. on a new conversation."""
        self._history.reset()
        self._admission.reset()

    def window(self) -> tuple[str, ...]:
        return self._history.window()

    def status(self) -> dict[str, object]:
        policy = resolve_sensitivity(self._settings_provider().sensitivity)
        return {
            "tracked": len(self._history),
            "window_size": policy.window_size,
            "threshold": policy.threshold,
            "sensitivity": policy.name,
            "processing": self._admission.in_progress,
            "last_processed_at": self._admission.last_time,
        }


# ---------------------------------------------------------------------------
# Batch scanning
# ---------------------------------------------------------------------------


def _conversation_key(value: object) -> object:
    # NaN, None, pd.NA and NaT all mean "no conversation id".
    if value is None or (pd.api.types.is_scalar(value) and pd.isna(value)):
        return None
    return value


@dataclass(frozen=True)
class ScanRow:
    admitted: bool
    tracked: int
    alert: AlertPayload | None


def scan_responses(
    samples: Iterable[tuple[str, bool, object]],
    settings: DetectorSettings | None = None,
    hyperparameters: Hyperparameters | None = None,
) -> list[ScanRow]:
    """Run a sequence of ``(text, is_user, conversation)`` rows through one detector.

    Rows are not a live event stream, so the debounce interval is disabled. The
    window is reset whenever ``conversation`` changes between rows.
    """
    hp = replace(hyperparameters or DEFAULT_HYPERPARAMETERS, debounce_seconds=0.0)
    snapshot = settings or DetectorSettings()
    detector = RepetitionDetector(settings_provider=lambda: snapshot, hyperparameters=hp)

    rows: list[ScanRow] = []
    current = object()
    for index, (text, is_user, conversation) in enumerate(samples):
        conversation = _conversation_key(conversation)
        if conversation != current:
            detector.reset()
            current = conversation
        alert = detector.check_repetition(text, is_user=is_user, now=float(index))
        admitted = detector.last_admission is not None and detector.last_admission.accepted
        rows.append(ScanRow(admitted=admitted, tracked=len(detector.window()), alert=alert))
    return rows
