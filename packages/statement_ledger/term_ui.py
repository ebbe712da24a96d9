"""Tiny terminal UI helpers (prompt_toolkit-based).

Kept apart from the review logic so prompts can be tested in isolation with
a pipe input and a dummy output.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.validation import ValidationError, Validator

from .models import SimilarityCandidate


def _session(session: PromptSession | None) -> PromptSession:
    if session is None:
        return PromptSession()
    return PromptSession(
        input=getattr(session, "input", None),
        output=getattr(session, "output", None),
    )


class _ChoiceValidator(Validator):
    def __init__(self, allowed_lower: set[str]) -> None:
        self._allowed_lower = allowed_lower

    def validate(self, document) -> None:
        if document.text.strip().lower() not in self._allowed_lower:
            raise ValidationError(message="Choose a category from the list.")


def select_category(
    categories: Sequence[str] | Iterable[str],
    *,
    default: str = "",
    message: str = "Category (Tab to complete): ",
    session: PromptSession | None = None,
) -> str:
    """Prompt for a category restricted to ``categories``.

    Matching is case-insensitive; the canonical spelling is returned. An
    empty answer accepts ``default``.
    """

    words = list(categories)
    canonical = {w.lower(): w for w in words}
    allowed = set(canonical)
    if default:
        allowed.add("")
    completer = WordCompleter(words, ignore_case=True, match_middle=True, sentence=True)

    value = _session(session).prompt(
        message,
        completer=completer,
        validator=_ChoiceValidator(allowed),
        validate_while_typing=False,
    )
    value = value.strip()
    if not value:
        return default
    return canonical[value.lower()]


class _SelectionValidator(Validator):
    def __init__(self, valid: set[int]) -> None:
        self._valid = valid

    def validate(self, document) -> None:
        try:
            parse_selection(document.text, self._valid)
        except ValueError as e:
            raise ValidationError(message=str(e)) from e


def parse_selection(text: str, valid: set[int]) -> list[int]:
    """Parse ``all``, ``none`` (or empty) or a comma-separated index list."""

    t = text.strip().lower()
    if t in {"", "none", "n"}:
        return []
    if t in {"all", "a", "y", "yes"}:
        return sorted(valid)
    out: list[int] = []
    for part in t.replace(" ", ",").split(","):
        if not part:
            continue
        if not part.isdigit():
            raise ValueError(f"Not a number: {part!r}")
        idx = int(part)
        if idx not in valid:
            raise ValueError(f"No candidate with index {idx}")
        if idx not in out:
            out.append(idx)
    return out


def confirm_candidates(
    candidates: Sequence[SimilarityCandidate],
    category: str,
    *,
    session: PromptSession | None = None,
) -> list[int]:
    """Show ``candidates`` and return the transaction indices the user accepts."""

    if not candidates:
        return []
    sess = _session(session)
    lines = [f"{len(candidates)} similar transaction(s) could also be {category!r}:"]
    for c in candidates:
        tx = c.transaction
        lines.append(
            f"  [{c.index}] {tx.date.isoformat()} {tx.amount:>10} {tx.description[:60]}"
            f"  ({c.similarity:.2f})"
        )
    lines.append("Apply to [all / none / comma-separated indices]: ")
    valid = {c.index for c in candidates}
    answer = sess.prompt(
        "\n".join(lines),
        validator=_SelectionValidator(valid),
        validate_while_typing=False,
    )
    return parse_selection(answer, valid)


__all__ = ["select_category", "confirm_candidates", "parse_selection"]
