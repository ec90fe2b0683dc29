"""Suggestion service interface and stale-safe lookups."""
from abc import ABC, abstractmethod
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
import math
from pathlib import Path
import threading
from typing import Any, Callable, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from formula_tags.common.errors import SuggestionUnavailable
from formula_tags.common.logger import logger
from formula_tags.common.tokens import VariableToken, parse_decimal


class Suggestion(BaseModel):
    """A candidate variable returned by the suggestion service."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Identifier of the catalog entry")
    name: str = Field(..., min_length=1, description="Variable name")
    category: str = Field(default="custom", description="Catalog category, shown next to the name")
    value: float = Field(default=0.0, description="Numeric value of the variable")

    @field_validator("id", mode="before")
    def id_to_string(cls, v: Any) -> Any:
        """Accept numeric identifiers, as returned by some JSON services."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("value", mode="before")
    def value_to_number(cls, v: Any) -> Any:
        """Coerce the value to a finite number; anything non-numeric counts as 0."""
        if v is None:
            return 0.0
        if isinstance(v, str):
            parsed = parse_decimal(v)
            return 0.0 if parsed is None else parsed
        if isinstance(v, float) and not math.isfinite(v):
            return 0.0
        return v

    def matches(self, text: str) -> bool:
        """Case-insensitive substring match on the name."""
        return text.lower() in self.name.lower()

    def to_variable(self) -> VariableToken:
        """Build a new variable token from this suggestion, with its own token id."""
        return VariableToken(name=self.name, category=self.category, value=self.value)


SUGGESTION_LIST_ADAPTER: TypeAdapter = TypeAdapter(List[Suggestion])


def load_catalog(path: Path) -> List[Suggestion]:
    """
    Read a JSON array of ``{id, name, category, value}`` records.

    :param Path path: JSON file

    :return: Suggestions in file order
    :rtype: List[Suggestion]
    :raises pydantic.ValidationError: If the file does not hold valid records
    """
    return SUGGESTION_LIST_ADAPTER.validate_json(path.read_bytes())


class SuggestionClient(ABC):
    """Source of candidate variables for a text prefix."""

    @abstractmethod
    def lookup(self, prefix: str) -> Iterable[Suggestion]:
        """
        Return candidates for ``prefix``.

        The result may be empty. The first item is treated as the default pick.
        Implementations may block on I/O and may raise any exception on failure.
        """


class StaticSuggestionClient(BaseModel, SuggestionClient):
    """Suggestion client backed by a fixed catalog held in memory."""

    model_config = ConfigDict(frozen=True)

    catalog: Tuple[Suggestion, ...] = Field(default=(), description="All known variables")

    @classmethod
    def from_json(cls, path: Path) -> "StaticSuggestionClient":
        """Build a client serving the catalog stored in a JSON file (see ``load_catalog``)."""
        return cls(catalog=tuple(load_catalog(path)))

    def lookup(self, prefix: str) -> List[Suggestion]:
        return [item for item in self.catalog if item.matches(prefix)]


class SuggestionFeed:
    """
    Run suggestion lookups in background threads, time-boxed and stale-safe.

    Each request gets a generation number. Starting a new request cancels the
    pending one if it has not started yet, and results of any older generation
    are discarded, so a slow answer for old text never replaces the answer for
    newer text.
    """

    def __init__(self, client: SuggestionClient, timeout: float = 2.0, max_workers: int = 4):
        self.client = client
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="suggestions")
        self._lock = threading.Lock()
        self._generation = 0
        self._pending: Optional[Future] = None

    def is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def submit(self, prefix: str) -> Tuple[int, Future]:
        """
        Start a lookup for ``prefix``, superseding any request still in flight.

        :param str prefix: Text typed by the user

        :return: Tuple of (generation, future of the candidate list)
        :rtype: Tuple[int, Future]
        """
        with self._lock:
            self._generation += 1
            generation = self._generation
            if self._pending is not None:
                self._pending.cancel()
            # Materialize the result so lazy clients run inside the worker thread
            future = self._executor.submit(lambda: list(self.client.lookup(prefix)))
            self._pending = future
        logger.debug(f"🔎 Lookup #{generation} started for {prefix!r}")
        return generation, future

    def fetch(self, prefix: str) -> Optional[List[Suggestion]]:
        """
        Look up ``prefix`` and wait for the answer.

        :param str prefix: Text typed by the user

        :return: Candidates, or None if a newer request superseded this one
        :rtype: Optional[List[Suggestion]]
        :raises SuggestionUnavailable: If the client failed or did not answer in time
        """
        generation, future = self.submit(prefix)
        try:
            results: List[Suggestion] = future.result(timeout=self.timeout)
        except CancelledError:
            return None
        except FutureTimeout as exc:
            future.cancel()
            raise SuggestionUnavailable(f"Suggestion lookup for {prefix!r} timed out after {self.timeout}s") from exc
        except Exception as exc:
            raise SuggestionUnavailable(f"Suggestion lookup for {prefix!r} failed: {exc}") from exc

        if not self.is_current(generation):
            logger.debug(f"🔎 Lookup #{generation} for {prefix!r} superseded, result dropped")
            return None
        return results

    def fetch_async(
        self,
        prefix: str,
        on_result: Callable[[List[Suggestion]], None],
        on_error: Optional[Callable[[SuggestionUnavailable], None]] = None,
    ) -> Future:
        """
        Look up ``prefix`` without waiting.

        ``on_result`` runs in the worker thread, and only if no newer request was
        started in the meantime. Failures are reported to ``on_error`` under the
        same condition.

        :param str prefix: Text typed by the user
        :param Callable on_result: Receives the candidate list
        :param Callable on_error: Receives a SuggestionUnavailable

        :return: Future of the raw lookup
        :rtype: Future
        """
        generation, future = self.submit(prefix)

        def _deliver(done: Future) -> None:
            if done.cancelled() or not self.is_current(generation):
                logger.debug(f"🔎 Lookup #{generation} for {prefix!r} superseded, result dropped")
                return
            exc = done.exception()
            if exc is not None:
                if on_error is not None:
                    on_error(SuggestionUnavailable(f"Suggestion lookup for {prefix!r} failed: {exc}"))
                return
            on_result(done.result())

        future.add_done_callback(_deliver)
        return future

    def close(self) -> None:
        """Stop the worker threads, dropping lookups that have not started."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "SuggestionFeed":
        return self

    def __exit__(self, *args) -> None:
        self.close()
