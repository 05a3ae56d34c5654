# SPDX-License-Identifier: Apache-2.0
"""Repetition Guard plugin for NeMo Data Designer.

Adds a ``repetition-guard`` column type that watches consecutive responses for
structural repetition: recurring sentence rhythms, opening words, paragraph shapes,
and dialogue/narrative balance. Heuristic only, no LLM calls.

Usage::

    from data_designer_repetition_guard import RepetitionGuardColumnConfig

    builder.add_column(RepetitionGuardColumnConfig(
        name="repetition_check",
        target_columns=["response"],
        sensitivity=2,
        conversation_column="conversation_id",
    ))

The detector can also be driven directly by a live host::

    from data_designer_repetition_guard import RepetitionDetector

    detector = RepetitionDetector(notifier=lambda alert: show_toast(alert.title, alert.body))
    detector.check_repetition(message_text, is_user=False)
"""

from data_designer_repetition_guard.config import RepetitionGuardColumnConfig
from data_designer_repetition_guard.core import (
    AlertPayload,
    DetectedPattern,
    Hyperparameters,
    aggregate,
    format_alert,
    resolve_sensitivity,
)
from data_designer_repetition_guard.detector import DetectorSettings, RepetitionDetector, scan_responses

__all__ = [
    "RepetitionGuardColumnConfig",
    "RepetitionDetector",
    "DetectorSettings",
    "Hyperparameters",
    "DetectedPattern",
    "AlertPayload",
    "aggregate",
    "format_alert",
    "resolve_sensitivity",
    "scan_responses",
]
