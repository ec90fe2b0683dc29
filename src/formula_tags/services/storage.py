"""Persistence adapters for the formula token sequence."""
from abc import ABC, abstractmethod
import json
import os
from pathlib import Path
import tempfile
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from formula_tags.common.errors import PersistenceFailure
from formula_tags.common.logger import logger
from formula_tags.common.tokens import TOKEN_LIST_ADAPTER, Token


def dump_tokens(tokens: Iterable[Token]) -> List[Dict[str, Any]]:
    """Serialize tokens to tagged records (``kind`` plus kind-specific fields)."""
    return TOKEN_LIST_ADAPTER.dump_python(list(tokens), mode="json")


def parse_tokens(records: Any) -> List[Token]:
    """
    Rebuild tokens from tagged records.

    :raises pydantic.ValidationError: If a record has an unknown kind or invalid fields
    """
    return TOKEN_LIST_ADAPTER.validate_python(records)


class PersistenceAdapter(ABC):
    """Key-value style storage holding one serialized token sequence."""

    @abstractmethod
    def save(self, tokens: Iterable[Token]) -> None:
        """
        Store the sequence, replacing any previous one.

        :raises PersistenceFailure: If the sequence could not be written
        """

    @abstractmethod
    def load(self) -> Optional[List[Token]]:
        """
        Return the stored sequence, or None if nothing was stored yet.

        :raises PersistenceFailure: If the stored data cannot be read or decoded
        """


class MemoryStore(PersistenceAdapter):
    """Keep the serialized sequence as a JSON string in memory."""

    def __init__(self):
        self.data: Optional[str] = None

    def save(self, tokens: Iterable[Token]) -> None:
        self.data = json.dumps(dump_tokens(tokens))

    def load(self) -> Optional[List[Token]]:
        if self.data is None:
            return None
        try:
            return parse_tokens(json.loads(self.data))
        except ValueError as exc:
            raise PersistenceFailure(f"Stored formula is corrupted: {exc}") from exc


class JsonFileStore(BaseModel, PersistenceAdapter):
    """
    Store the sequence in a JSON document on disk.

    The document maps storage keys to envelopes shaped like
    ``{"state": {"formula": [...]}, "version": 0}`` so several formulas can
    share one file. Writes go through a temporary file and an atomic rename,
    so a failed save never truncates the previous content.
    """

    model_config = ConfigDict(frozen=True)

    path: Path = Field(..., description="JSON file holding stored formulas")
    key: str = Field(default="formula-storage", min_length=1, description="Key of this formula in the document")
    version: int = Field(default=0, ge=0, description="Envelope version written on save")

    def _read_document(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise PersistenceFailure(f"Cannot read formula store {self.path}: {exc}") from exc
        if not isinstance(document, dict):
            raise PersistenceFailure(f"Formula store {self.path} does not hold a JSON object")
        return document

    def save(self, tokens: Iterable[Token]) -> None:
        """
        Write the sequence under ``key``, keeping the other keys of the document.

        :param Iterable[Token] tokens: Sequence to store

        :raises PersistenceFailure: If the file cannot be read or written
        """
        document: Dict[str, Any] = self._read_document() or {}
        document[self.key] = {"state": {"formula": dump_tokens(tokens)}, "version": self.version}

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f_out:
                    json.dump(document, f_out)
                os.replace(tmp_name, self.path)
            except BaseException:
                # Never leave a half-written temporary file behind
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise PersistenceFailure(f"Cannot write formula store {self.path}: {exc}") from exc

        logger.debug(f"💾 Formula saved to {self.path} under {self.key!r}")

    def load(self) -> Optional[List[Token]]:
        """
        Read the sequence stored under ``key``.

        :return: Stored tokens, or None if the file or key does not exist
        :rtype: Optional[List[Token]]
        :raises PersistenceFailure: If the file is unreadable or the stored records are invalid
        """
        document = self._read_document()
        if document is None or self.key not in document:
            return None
        try:
            return parse_tokens(document[self.key]["state"]["formula"])
        except (KeyError, TypeError, ValidationError) as exc:
            raise PersistenceFailure(f"Stored formula under {self.key!r} is corrupted: {exc}") from exc
