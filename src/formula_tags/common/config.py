"""Pydantic settings for the sequence editor."""
from pydantic import BaseModel, ConfigDict, Field


class EditorSettings(BaseModel):
    """
    Tunable values for a formula editing session.

    The instance is frozen so a running editor cannot be reconfigured halfway
    through a session.
    """

    model_config = ConfigDict(frozen=True)

    lookup_timeout: float = Field(default=2.0, gt=0, description="Seconds to wait for a suggestion lookup")
    storage_key: str = Field(default="formula-storage", min_length=1, description="Key of the stored sequence")
    max_visible_suggestions: int = Field(default=7, ge=1, description="Suggestions shown while typing")
    max_replacement_suggestions: int = Field(default=5, ge=1, description="Suggestions offered to replace a token")
