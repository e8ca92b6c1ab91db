"""Tiny terminal UI helpers (prompt_toolkit-based).

Small, focused prompts used by the interactive review of new items. They are
kept apart from the review logic so they are easy to test with a pipe input.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from decimal import Decimal, InvalidOperation
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggest, Suggestion
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.styles import Style
from prompt_toolkit.validation import ValidationError, Validator

CREATE_SENTINEL = "+ Create new category..."
_CREATE_HINT_PREFIX = "  [Create "


class CreateCategoryRequest:
    """Returned when the operator typed a category the ruleset does not know."""

    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:  # pragma: no cover - trivial repr
        return f"CreateCategoryRequest(name={self.name!r})"


def _session_for(session: PromptSession | None, kb: KeyBindings) -> PromptSession:
    if session is None:
        return PromptSession(key_bindings=kb)
    return PromptSession(
        input=getattr(session, "input", None),
        output=getattr(session, "output", None),
        key_bindings=kb,
    )


def select_category_or_create(
    categories: Sequence[str] | Iterable[str],
    *,
    default: str,
    message: str = "Category (Enter to accept): ",
    session: PromptSession | None = None,
    allow_create: bool = True,
) -> str | CreateCategoryRequest:
    """Prompt for a category with the suggestion pre-filled.

    Tab completes the greyed prefix suggestion or opens the completion menu;
    Enter accepts the highlighted completion, else the prefix completion,
    else the typed text. Returns the canonical category name, or a
    :class:`CreateCategoryRequest` for an unknown name when ``allow_create``.
    """

    words = list(categories)
    if allow_create:
        words.append(CREATE_SENTINEL)
    canonical = {w.lower(): w for w in words if w != CREATE_SENTINEL}

    completer = WordCompleter(words, ignore_case=True, match_middle=True, sentence=False)

    def _best_prefix_match(text: str) -> str | None:
        if not text:
            return None
        lower = text.lower()
        if lower in canonical:
            return None
        for w in words:
            if w.lower().startswith(lower):
                return w
        return None

    class _SuggestOrCreate(AutoSuggest):
        def get_suggestion(self, buffer, document):
            text = document.text
            cand = _best_prefix_match(text)
            if cand:
                return Suggestion(cand[len(text) :]) if len(cand) > len(text) else None
            if text and allow_create and text.lower() not in canonical:
                return Suggestion(f"{_CREATE_HINT_PREFIX}'{text}'?]")
            return None

    kb = KeyBindings()
    menu_opened = False

    def _open_or_advance(b) -> None:
        nonlocal menu_opened
        if b.complete_state is None:
            b.start_completion(select_first=True)
        else:
            b.complete_next()
        menu_opened = True

    @kb.add("down", eager=True)
    def _(event) -> None:  # pragma: no cover - integration path
        _open_or_advance(event.app.current_buffer)

    @kb.add("tab", eager=True)
    def _(event) -> None:  # pragma: no cover
        b = event.app.current_buffer
        cand = _best_prefix_match(b.document.text)
        if cand:
            b.insert_text(cand[len(b.document.text) :])
        else:
            _open_or_advance(b)

    @kb.add("enter", eager=True)
    def _(event) -> None:  # pragma: no cover
        b = event.app.current_buffer
        cs = b.complete_state
        if cs is not None and cs.current_completion is not None:
            b.apply_completion(cs.current_completion)
        else:
            cand = _best_prefix_match(b.document.text)
            if cand:
                b.insert_text(cand[len(b.document.text) :])
            elif menu_opened and not b.document.text and words:
                b.insert_text(words[0])
        b.validate_and_handle()

    result = _session_for(session, kb).prompt(
        message,
        completer=completer,
        default=default or "",
        key_bindings=kb,
        auto_suggest=_SuggestOrCreate(),
        style=Style.from_dict({"auto-suggestion": "fg:#888888"}),
    )

    if result == "":
        result = default or ""
    if allow_create:
        if result == CREATE_SENTINEL:
            return CreateCategoryRequest("")
        if result.lower() not in canonical:
            return CreateCategoryRequest(result)
    return canonical.get(result.lower(), result)


def _prompt_validated(
    message: str,
    *,
    default: str,
    check: Callable[[str], str | None],
    session: PromptSession | None,
) -> str | None:
    """Prompt until ``check`` returns no error; Esc or Ctrl+C cancels (``None``)."""

    kb = KeyBindings()

    @kb.add("escape")
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result=None)

    @kb.add("c-c", eager=True)
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result=None)

    class _V(Validator):
        def validate(self, document) -> None:
            error = check(document.text.strip())
            if error:
                raise ValidationError(message=error)

    value = _session_for(session, kb).prompt(
        message,
        default=default,
        validator=_V(),
        validate_while_typing=False,
        key_bindings=kb,
    )
    return value.strip() if value is not None else None


def _check_rate(text: str) -> str | None:
    try:
        rate = Decimal(text.replace(",", "."))
    except InvalidOperation:
        return "Enter a tax rate such as 0.09"
    if not rate.is_finite() or rate < 0 or rate > 1:
        return "Tax rate must be between 0 and 1"
    return None


def prompt_tax_rate(
    *,
    default: Decimal | str = "",
    session: PromptSession | None = None,
    message: str = "Tax rate (0-1): ",
) -> Decimal | None:
    value = _prompt_validated(message, default=str(default), check=_check_rate, session=session)
    return Decimal(value.replace(",", ".")) if value is not None else None


def prompt_ledger_code(
    *,
    default: str = "",
    session: PromptSession | None = None,
    message: str = "Ledger code: ",
) -> str | None:
    return _prompt_validated(
        message,
        default=default,
        check=lambda t: None if t else "Ledger code must not be empty",
        session=session,
    )


def prompt_periods(
    *,
    default: int | None = None,
    session: PromptSession | None = None,
    message: str = "Periods (empty for none): ",
) -> int | None:
    """Positive period count for accrual/spread handling; empty means none."""

    def _check(text: str) -> str | None:
        if not text:
            return None
        if not text.isdigit() or int(text) <= 0:
            return "Enter a positive whole number"
        return None

    value = _prompt_validated(
        message, default="" if default is None else str(default), check=_check, session=session
    )
    return int(value) if value else None


def prompt_choice(
    choices: Sequence[str],
    *,
    default: str,
    session: PromptSession | None = None,
    message: str = "Choose: ",
) -> str:
    """Pick one of ``choices`` (case-insensitive); returns the canonical value."""

    canonical = {c.lower(): c for c in choices}
    kb = KeyBindings()
    options: dict[str, Any] = {
        "completer": WordCompleter(list(choices), ignore_case=True, sentence=True),
        "validator": Validator.from_callable(
            lambda t: t.strip().lower() in canonical,
            error_message="Choose one of: " + ", ".join(choices),
            move_cursor_to_end=True,
        ),
        "validate_while_typing": False,
        "default": default,
    }
    value = _session_for(session, kb).prompt(message, **options)
    return canonical[value.strip().lower()]


__all__ = [
    "CREATE_SENTINEL",
    "CreateCategoryRequest",
    "prompt_choice",
    "prompt_ledger_code",
    "prompt_periods",
    "prompt_tax_rate",
    "select_category_or_create",
]
