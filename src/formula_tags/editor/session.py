"""Transient state of one editing session."""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from formula_tags.services.suggestions import Suggestion


class EditSession(BaseModel):
    """
    What the user is currently typing or editing.

    Created fresh for each session and never persisted.
    """

    model_config = ConfigDict(validate_assignment=True)

    buffer: str = Field(default="", description="Free text typed but not yet committed")
    selected_index: Optional[int] = Field(default=None, ge=0, description="Token selected for replacement")
    editing_index: Optional[int] = Field(default=None, ge=0, description="Token under in-place rename")
    editing_text: str = Field(default="", description="Text of the token under rename")
    candidates: List[Suggestion] = Field(default_factory=list, description="Last suggestions fetched for the buffer")
    last_result: Optional[float] = Field(default=None, description="Result of the last evaluation")

    @property
    def is_renaming(self) -> bool:
        return self.editing_index is not None

    def clear_buffer(self) -> None:
        self.buffer = ""
        self.candidates = []

    def reset_rename(self) -> None:
        self.editing_index = None
        self.editing_text = ""


class ActionOutcome(BaseModel):
    """Effects of one editor action, reported back to the caller."""

    changed: bool = Field(default=False, description="Whether the token sequence was modified")
    result: Optional[float] = Field(default=None, description="Evaluation result, if the action evaluated")
    error: Optional[str] = Field(default=None, description="Evaluation error message")
    error_index: Optional[int] = Field(default=None, description="Sequence index named by the evaluation error")
    warnings: List[str] = Field(default_factory=list, description="Recovered, non-fatal failures")
