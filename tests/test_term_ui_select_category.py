import contextlib
from decimal import Decimal

from prompt_toolkit import PromptSession
from prompt_toolkit.input import create_pipe_input
from prompt_toolkit.output import DummyOutput
from revenue_recon.categories import DEFAULT_RULES, category_names
from revenue_recon.term_ui import (
    CREATE_SENTINEL,
    CreateCategoryRequest,
    prompt_choice,
    prompt_ledger_code,
    prompt_periods,
    prompt_tax_rate,
    select_category_or_create,
)

CATEGORIES = category_names(DEFAULT_RULES)


@contextlib.contextmanager
def pipe_session():
    with create_pipe_input() as pipe:
        sess = PromptSession(input=pipe, output=DummyOutput())
        yield pipe, sess


def test_select_category_or_create_accepts_default_with_enter():
    # Default suggested category is pre-filled; pressing Enter accepts it.
    default = "Omzet Drank Laag"
    with pipe_session() as (pipe, sess):
        pipe.send_text("\r")  # Enter
        result = select_category_or_create(CATEGORIES, default=default, session=sess, allow_create=False)
        assert result == default


def test_select_category_or_create_change_by_typing():
    # Clear the default, type the target, then Enter.
    with pipe_session() as (pipe, sess):
        # Ctrl-A (home), Ctrl-K (kill to end), type full target, Enter
        pipe.send_text("\x01\x0bAbonnementen\r")
        result = select_category_or_create(CATEGORIES, default="Overig", session=sess, allow_create=False)
        assert result == "Abonnementen"


def test_tab_on_empty_buffer_opens_dropdown_and_enter_accepts_first():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x01\x0b")  # Ctrl-A, Ctrl-K to clear
        pipe.send_text("\t\r")  # Open via Tab, then Enter to accept first item
        result = select_category_or_create(CATEGORIES, default="Overig", session=sess, allow_create=False)
        assert result == CATEGORIES[0]


def test_inline_suggestion_tab_autocompletes_prefix():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x01\x0bAbo\t\r")  # Clear, type 'Abo', Tab to complete, Enter
        result = select_category_or_create(CATEGORIES, default="Overig", session=sess, allow_create=False)
        assert result == "Abonnementen"


def test_inline_suggestion_enter_commits_prefix_completion():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x01\x0bRit\r")  # Clear, type 'Rit', Enter (should become Rittenkaarten)
        result = select_category_or_create(CATEGORIES, default="Overig", session=sess, allow_create=False)
        assert result == "Rittenkaarten"


def test_category_match_is_case_insensitive_and_canonicalized():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x01\x0bgift cards\r")
        result = select_category_or_create(CATEGORIES, default="Overig", session=sess, allow_create=False)
        assert result == "Gift Cards"


def test_unknown_category_requests_creation():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x01\x0bVerhuur\r")
        result = select_category_or_create(CATEGORIES, default="Overig", session=sess, allow_create=True)
        assert isinstance(result, CreateCategoryRequest)
        assert result.name == "Verhuur"


def test_create_sentinel_requests_creation_without_name():
    with pipe_session() as (pipe, sess):
        pipe.send_text(f"\x01\x0b{CREATE_SENTINEL}\r")
        result = select_category_or_create(CATEGORIES, default="Overig", session=sess, allow_create=True)
        assert isinstance(result, CreateCategoryRequest)
        assert result.name == ""


def test_prompt_tax_rate_accepts_default_and_decimal_comma():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\r")
        assert prompt_tax_rate(default=Decimal("0.09"), session=sess) == Decimal("0.09")
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x01\x0b0,21\r")
        assert prompt_tax_rate(default="", session=sess) == Decimal("0.21")


def test_prompt_tax_rate_rejects_out_of_range_until_valid():
    with pipe_session() as (pipe, sess):
        # First Enter fails validation (1.5); the buffer is then corrected.
        pipe.send_text("\x01\x0b1.5\r\x01\x0b0.09\r")
        assert prompt_tax_rate(session=sess) == Decimal("0.09")


def test_prompt_ledger_code_and_periods():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x01\x0b8400\r")
        assert prompt_ledger_code(default="8999", session=sess) == "8400"
    with pipe_session() as (pipe, sess):
        pipe.send_text("\r")
        assert prompt_periods(default=14, session=sess) == 14
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x01\x0b\r")
        assert prompt_periods(default=12, session=sess) is None


def test_prompt_choice_returns_canonical_value():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x01\x0bSPREAD\r")
        assert prompt_choice(["accrual", "spread"], default="accrual", session=sess) == "spread"
