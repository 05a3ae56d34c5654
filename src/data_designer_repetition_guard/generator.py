from __future__ import annotations

import logging

import pandas as pd
from data_designer.engine.column_generators.generators.base import ColumnGeneratorFullColumn

from data_designer_repetition_guard.config import RepetitionGuardColumnConfig
from data_designer_repetition_guard.detector import ScanRow, scan_responses

logger = logging.getLogger(__name__)


def _is_missing(value) -> bool:
    return value is None or (pd.api.types.is_scalar(value) and pd.isna(value))


def _row_text(values) -> str:
    return " ".join(str(v) for v in values if not _is_missing(v))


def _build_samples(data: pd.DataFrame, config: RepetitionGuardColumnConfig) -> list[tuple[str, bool, object]]:
    """Turn dataset rows into ``(text, is_user, conversation)`` samples, in row order."""
    user_roles = set(config.user_roles)
    samples = []
    for _, row in data.iterrows():
        text = _row_text(row[config.target_columns].values)
        is_user = False
        if config.role_column:
            role = row[config.role_column]
            is_user = not _is_missing(role) and str(role) in user_roles
        conversation = None
        if config.conversation_column:
            value = row[config.conversation_column]
            conversation = None if _is_missing(value) else value
        samples.append((text, is_user, conversation))
    return samples


def _build_output(scanned: ScanRow, include_patterns: bool) -> dict:
    output: dict = {
        "is_valid": scanned.alert is None,
        "admitted": scanned.admitted,
        "tracked": scanned.tracked,
        "repetition_alert": scanned.alert.body if scanned.alert else None,
    }
    if include_patterns:
        output["repetition_patterns"] = [p.to_payload() for p in scanned.alert.patterns] if scanned.alert else []
    return output


class RepetitionGuardColumnGenerator(ColumnGeneratorFullColumn[RepetitionGuardColumnConfig]):
    """Column generator that flags structurally repetitive responses across consecutive rows."""

    def generate(self, data: pd.DataFrame) -> pd.DataFrame:
        config = self.config
        logger.info(f"\U0001f501 Checking column {config.name!r} for repetitive response patterns")
        logger.info(f"   target columns: {config.target_columns}")
        logger.info(f"   sensitivity: {config.sensitivity}")
        if config.conversation_column:
            logger.info(f"   conversation column: {config.conversation_column}")

        samples = _build_samples(data, config)
        results = [
            _build_output(scanned, config.include_patterns)
            for scanned in scan_responses(samples, config.to_detector_settings())
        ]

        flagged = sum(1 for r in results if not r["is_valid"])
        logger.info(f"   flagged {flagged} of {len(results)} rows")

        data = data.copy()
        data[config.name] = results
        return data
