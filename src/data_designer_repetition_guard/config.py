from __future__ import annotations

from typing import Literal

from pydantic import Field

from data_designer.config.column_configs import SingleColumnConfig

from data_designer_repetition_guard.detector import DetectorSettings


class RepetitionGuardColumnConfig(SingleColumnConfig):
    """Flag responses whose structure keeps repeating across the preceding rows.

    Rows are fed, in dataset order, through a sliding window of recent responses.
    Each row gets the alert (if any) raised when it entered the window.

    Attributes:
        target_columns: Columns whose text content will be concatenated into one response.
        sensitivity: 1 (low, window 7 / threshold 4), 2 (medium, 5 / 3) or 3 (high, 4 / 2).
        check_sentence_structure: Track sentence-length rhythm and average sentence length.
        check_opening_patterns: Track opening line shape and filler opening words.
        check_paragraph_structure: Track sentences-per-paragraph shape.
        check_dialogue_patterns: Track dialogue-heavy vs narrative-heavy balance.
        role_column: Optional column naming each row's author; user rows are skipped.
        user_roles: Values of ``role_column`` that mark a row as user-authored.
        conversation_column: Optional column; the window is reset whenever its value changes.
        include_patterns: Include the raw detected pattern payloads in output.
    """

    target_columns: list[str]
    sensitivity: int = Field(default=2, ge=1, le=3, description="Detection sensitivity (1=low, 2=medium, 3=high)")
    check_sentence_structure: bool = Field(default=True, description="Detect repeated sentence rhythms")
    check_opening_patterns: bool = Field(default=True, description="Detect repeated opening lines and words")
    check_paragraph_structure: bool = Field(default=True, description="Detect repeated paragraph shapes")
    check_dialogue_patterns: bool = Field(default=True, description="Detect repeated dialogue/narrative balance")
    role_column: str | None = Field(default=None, description="Column holding the author role of each row")
    user_roles: list[str] = Field(default_factory=lambda: ["user"], description="Role values treated as user rows")
    conversation_column: str | None = Field(default=None, description="Column whose changes reset the window")
    include_patterns: bool = Field(default=False, description="Include raw detected patterns in output")
    column_type: Literal["repetition-guard"] = "repetition-guard"

    @staticmethod
    def get_column_emoji() -> str:
        return "\U0001f501"

    @property
    def required_columns(self) -> list[str]:
        extra = [c for c in (self.role_column, self.conversation_column) if c]
        return [*self.target_columns, *extra]

    @property
    def side_effect_columns(self) -> list[str]:
        return []

    def to_detector_settings(self) -> DetectorSettings:
        return DetectorSettings(
            enabled=True,
            sensitivity=self.sensitivity,
            check_sentence_structure=self.check_sentence_structure,
            check_opening_patterns=self.check_opening_patterns,
            check_paragraph_structure=self.check_paragraph_structure,
            check_dialogue_patterns=self.check_dialogue_patterns,
        )
