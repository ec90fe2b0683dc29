"""Mutation API and key-handling policy of the formula tag editor."""
from typing import Callable, List, Optional

from formula_tags.common.config import EditorSettings
from formula_tags.common.errors import FormulaSyntaxError, PersistenceFailure, SuggestionUnavailable
from formula_tags.common.evaluator import FormulaEvaluator
from formula_tags.common.logger import logger
from formula_tags.common.tokens import (
    OPERATOR_SYMBOLS,
    NumberToken,
    OperatorToken,
    Token,
    VariableToken,
    parse_decimal,
)
from formula_tags.editor.sequence import FormulaSequence
from formula_tags.editor.session import ActionOutcome, EditSession
from formula_tags.services.storage import PersistenceAdapter
from formula_tags.services.suggestions import Suggestion, SuggestionClient, SuggestionFeed


class SequenceEditor:
    """
    Edit a formula token by token, the way a tag input does.

    The editor owns the token sequence and the transient edit session. Each
    public action mutates them and returns an ActionOutcome describing its
    effects; nothing happens in the background except optional suggestion
    lookups started with ``set_input(..., background=True)``.

    Collaborators:
        - SuggestionClient: resolves typed text into catalog variables
        - PersistenceAdapter: receives the sequence after every mutation
    """

    def __init__(
        self,
        sequence: Optional[FormulaSequence] = None,
        suggestions: Optional[SuggestionClient] = None,
        store: Optional[PersistenceAdapter] = None,
        settings: Optional[EditorSettings] = None,
    ):
        self.settings: EditorSettings = settings or EditorSettings()
        self.sequence: FormulaSequence = sequence if sequence is not None else FormulaSequence()
        self.session: EditSession = EditSession()
        self.store: Optional[PersistenceAdapter] = store
        self.feed: Optional[SuggestionFeed] = (
            SuggestionFeed(suggestions, timeout=self.settings.lookup_timeout) if suggestions is not None else None
        )

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def _persist(self) -> List[str]:
        """Save the sequence; a failure becomes a warning and never undoes the edit."""
        if self.store is None:
            return []
        try:
            self.store.save(self.sequence.snapshot())
        except PersistenceFailure as exc:
            logger.warning(f"💾⚠️ Formula kept in memory only: {exc}")
            return [str(exc)]
        return []

    def _changed(self) -> ActionOutcome:
        return ActionOutcome(changed=True, warnings=self._persist())

    def _lookup(self, text: str) -> List[Suggestion]:
        """Fetch candidates for ``text``; an unavailable service yields no candidates."""
        if self.feed is None:
            return []
        try:
            results = self.feed.fetch(text)
        except SuggestionUnavailable as exc:
            logger.warning(f"🔎⚠️ {exc}")
            return []
        return results or []

    def restore(self) -> ActionOutcome:
        """
        Load the stored sequence into the editor.

        :return: Outcome; a load failure is reported as a warning and leaves the sequence as is.
            A successful load drops the selection and any rename in progress.
        :rtype: ActionOutcome
        """
        if self.store is None:
            return ActionOutcome()
        try:
            tokens = self.store.load()
        except PersistenceFailure as exc:
            logger.warning(f"💾⚠️ Could not restore formula: {exc}")
            return ActionOutcome(warnings=[str(exc)])
        if tokens is None:
            return ActionOutcome()
        with self.sequence.lock:
            self.sequence.set_tokens(tokens)
            # Positions of the previous content no longer address anything
            self.session.selected_index = None
            self.session.reset_rename()
        logger.info(f"💾 Restored formula with {len(tokens)} tokens")
        return ActionOutcome(changed=True)

    def close(self) -> None:
        if self.feed is not None:
            self.feed.close()

    # ------------------------------------------------------------------
    # Sequence mutations
    # ------------------------------------------------------------------

    def append(self, token: Token) -> ActionOutcome:
        self.sequence.append(token)
        return self._changed()

    def remove_at(self, index: int) -> ActionOutcome:
        """
        Remove the token at ``index``, keeping selection and rename on the same tokens.

        :raises IndexError: If ``index`` is out of range
        """
        with self.sequence.lock:
            self.sequence.remove_at(index)
            session = self.session
            if session.selected_index is not None:
                if session.selected_index == index:
                    session.selected_index = None
                elif session.selected_index > index:
                    session.selected_index -= 1
            if session.editing_index is not None:
                if session.editing_index == index:
                    session.reset_rename()
                elif session.editing_index > index:
                    session.editing_index -= 1
        return self._changed()

    def replace_at(self, index: int, token: Token) -> ActionOutcome:
        """
        Replace the token at ``index``.

        :raises IndexError: If ``index`` is out of range
        """
        self.sequence.replace_at(index, token)
        return self._changed()

    def resolve_free_text(self, text: str) -> Token:
        """
        Turn typed text into a token.

        A finite decimal literal becomes a NumberToken. Otherwise the suggestion
        service is asked: an exact (case-insensitive) name match wins, then the
        first candidate containing the text. Without a match the text becomes a
        new VariableToken worth 0, named by the stripped text. Blank text gives a
        zero NumberToken.

        :param str text: Raw text typed by the user

        :return: A usable token; this method never raises
        :rtype: Token
        """
        value = parse_decimal(text)
        if value is not None:
            return NumberToken(value=value)
        name = text.strip()
        if not name:
            return NumberToken()

        candidates = [item for item in self._lookup(name) if item.matches(name)]
        wanted = name.lower()
        for item in candidates:
            if item.name.strip().lower() == wanted:
                return item.to_variable()
        if candidates:
            return candidates[0].to_variable()
        return VariableToken(name=name)

    # ------------------------------------------------------------------
    # Input buffer and suggestions
    # ------------------------------------------------------------------

    def filtered_candidates(self) -> List[Suggestion]:
        """Candidates whose name contains the buffer, case-insensitively."""
        return [item for item in self.session.candidates if item.matches(self.session.buffer)]

    def visible_candidates(self) -> List[Suggestion]:
        return self.filtered_candidates()[: self.settings.max_visible_suggestions]

    def replacement_candidates(self) -> List[Suggestion]:
        return self.session.candidates[: self.settings.max_replacement_suggestions]

    def _apply_candidates(self, text: str, results: List[Suggestion]) -> None:
        # Answers for text that is no longer in the buffer are stale
        with self.sequence.lock:
            if self.session.buffer == text:
                self.session.candidates = results

    def set_input(self, text: str, background: bool = False) -> ActionOutcome:
        """
        Replace the input buffer and refresh the suggestion candidates.

        Lookups only run for non-empty text that is not an operator symbol.
        With ``background=True`` the lookup does not block; its result is applied
        only if the buffer still holds ``text`` when it arrives.

        :param str text: New buffer content
        :param bool background: Whether to wait for the suggestion service
        """
        with self.sequence.lock:
            self.session.buffer = text
            self.session.candidates = []
        if not text or text in OPERATOR_SYMBOLS or self.feed is None:
            return ActionOutcome()

        if not background:
            results = self._lookup(text)
            self._apply_candidates(text, results)
            return ActionOutcome()

        def _fail(exc: SuggestionUnavailable) -> None:
            logger.warning(f"🔎⚠️ {exc}")

        self.feed.fetch_async(text, lambda results: self._apply_candidates(text, results), _fail)
        return ActionOutcome()

    def _commit_token(self, token: Token) -> ActionOutcome:
        with self.sequence.lock:
            self.sequence.append(token)
            self.session.clear_buffer()
        return self._changed()

    def commit(self) -> ActionOutcome:
        """
        Commit the buffer as a token (submit).

        The first filtered candidate wins if there is one, otherwise the buffer
        is resolved as free text. An empty buffer is a no-op.
        """
        if not self.session.buffer:
            return ActionOutcome()
        candidates = self.filtered_candidates()
        if candidates:
            return self._commit_token(candidates[0].to_variable())
        return self._commit_token(self.resolve_free_text(self.session.buffer))

    def accept_suggestion(self) -> ActionOutcome:
        """Append the top candidate, whatever the buffer holds; no-op without candidates."""
        candidates = self.filtered_candidates()
        if not candidates:
            return ActionOutcome()
        return self._commit_token(candidates[0].to_variable())

    def type_operator(self, symbol: str) -> ActionOutcome:
        """
        Commit the pending buffer as free text, then append an operator.

        :param str symbol: One of + - * / ^ ( )

        :raises ValueError: If ``symbol`` is not an operator
        """
        if symbol not in OPERATOR_SYMBOLS:
            raise ValueError(f"Not an operator: {symbol!r}")
        with self.sequence.lock:
            if self.session.buffer:
                self.sequence.append(self.resolve_free_text(self.session.buffer))
            self.sequence.append(OperatorToken(symbol=symbol))
            self.session.clear_buffer()
        return self._changed()

    def delete_backward(self) -> ActionOutcome:
        """Delete the last buffer character, or the last token when the buffer is empty."""
        if self.session.buffer:
            return self.set_input(self.session.buffer[:-1])
        if not len(self.sequence):
            return ActionOutcome()
        return self.remove_at(len(self.sequence) - 1)

    def evaluate(self) -> ActionOutcome:
        """
        Commit any pending text, then evaluate the whole sequence.

        :return: Outcome carrying either the result or the error message
        :rtype: ActionOutcome
        """
        outcome = self.commit()
        snapshot = self.sequence.snapshot()
        try:
            result = FormulaEvaluator.evaluate(snapshot)
        except FormulaSyntaxError as exc:
            logger.error(f"🧮❌ Could not evaluate formula at token {exc.index}: {exc}")
            self.session.last_result = None
            return outcome.model_copy(update={"error": str(exc), "error_index": exc.index})

        self.session.last_result = result
        logger.info(f"🧮✅ Formula with {len(snapshot)} tokens evaluated to {result}")
        return outcome.model_copy(update={"result": result})

    # ------------------------------------------------------------------
    # Selection and in-place rename
    # ------------------------------------------------------------------

    def select_token(self, index: int) -> ActionOutcome:
        """
        Toggle the selection of the token at ``index``.

        An in-place rename of another token is finished first.

        :raises IndexError: If ``index`` is out of range
        """
        self.sequence.check_index(index)
        outcome = ActionOutcome()
        if self.session.is_renaming and self.session.editing_index != index:
            outcome = self.finish_rename()
        self.session.selected_index = None if self.session.selected_index == index else index
        return outcome

    def replace_selected(self, candidate: Suggestion) -> ActionOutcome:
        """
        Replace the selected token with a suggestion and clear the selection.

        :raises ValueError: If no token is selected
        """
        index = self.session.selected_index
        if index is None:
            raise ValueError("No token selected for replacement")
        with self.sequence.lock:
            self.sequence.replace_at(index, candidate.to_variable())
            self.session.selected_index = None
        return self._changed()

    def start_rename(self, index: int) -> ActionOutcome:
        """
        Put the token at ``index`` under in-place rename.

        :raises IndexError: If ``index`` is out of range
        :raises ValueError: If the token is an operator
        """
        token = self.sequence[index]
        if isinstance(token, OperatorToken):
            raise ValueError(f"Operator tokens cannot be renamed (token {index})")
        outcome = ActionOutcome()
        if self.session.is_renaming and self.session.editing_index != index:
            outcome = self.finish_rename()
        self.session.editing_index = index
        self.session.editing_text = token.label
        return outcome

    def update_rename(self, text: str) -> ActionOutcome:
        if not self.session.is_renaming:
            raise ValueError("No token is being renamed")
        self.session.editing_text = text
        return ActionOutcome()

    @staticmethod
    def _rederive(original: Token, text: str) -> Token:
        value = parse_decimal(text)
        if value is not None:
            return NumberToken(value=value)
        if isinstance(original, VariableToken):
            # Same tag instance: keep its identity and category
            return VariableToken(id=original.id, name=text, category=original.category)
        return VariableToken(name=text)

    def finish_rename(self) -> ActionOutcome:
        """
        Apply the rename text to the token under rename.

        The suggestion service is not consulted. Unchanged or blank text keeps
        the original token.
        """
        if not self.session.is_renaming:
            return ActionOutcome()
        with self.sequence.lock:
            index = self.session.editing_index
            text = self.session.editing_text
            self.session.reset_rename()
            original = self.sequence[index]
            if text == original.label or not text.strip():
                return ActionOutcome()
            self.sequence.replace_at(index, self._rederive(original, text))
        return self._changed()

    def cancel_rename(self) -> ActionOutcome:
        self.session.reset_rename()
        return ActionOutcome()

    def click_outside(self) -> ActionOutcome:
        """Clicking away from an active rename finishes it."""
        return self.finish_rename()

    # ------------------------------------------------------------------
    # Raw keys
    # ------------------------------------------------------------------

    def press_key(self, key: str) -> ActionOutcome:
        """
        Apply one raw key press.

        Keys:
            - ``Backspace``: delete a buffer character, or the last token
            - ``+ - * / ^ ( )``: commit the buffer and append the operator
            - ``Enter``: finish a rename, commit the buffer, or evaluate when the buffer is empty
            - ``Tab``: accept the top suggestion
            - ``=``: evaluate
            - ``Escape``: cancel a rename
            - any other single character: type it

        Unknown named keys are ignored.

        :param str key: Key name or typed character
        """
        handlers: dict[str, Callable[[], ActionOutcome]] = {
            "Backspace": self.delete_backward,
            "Tab": self.accept_suggestion,
            "=": self.evaluate,
            "Escape": self.cancel_rename,
        }
        if self.session.is_renaming:
            if key == "Enter":
                return self.finish_rename()
            if key == "Escape":
                return self.cancel_rename()
            if key == "Backspace":
                return self.update_rename(self.session.editing_text[:-1])
            if len(key) == 1:
                return self.update_rename(self.session.editing_text + key)
            return ActionOutcome()

        if key in OPERATOR_SYMBOLS:
            return self.type_operator(key)
        if key == "Enter":
            return self.commit() if self.session.buffer else self.evaluate()
        if key in handlers:
            return handlers[key]()
        if len(key) == 1:
            return self.set_input(self.session.buffer + key)
        return ActionOutcome()
