"""Parser registry: picks the statement format for a document's first page."""

from __future__ import annotations

from ..logging_setup import get_logger
from ..settings import LedgerSettings
from .base import StatementParser
from .uob import UOBParser

_log = get_logger("statement_ledger.parsers.registry")

# Formats available out of the box, in registration order.
DEFAULT_PARSERS: tuple[type[StatementParser], ...] = (UOBParser,)


class ParserRegistry:
    """Ordered set of parsers keyed by ``bank_id``."""

    def __init__(self, *, min_confidence: float = 0.5) -> None:
        self.min_confidence = min_confidence
        self._parsers: list[StatementParser] = []

    def register(self, parser: StatementParser) -> None:
        """Add ``parser``, replacing any parser with the same ``bank_id``."""

        if any(p.bank_id == parser.bank_id for p in self._parsers):
            _log.warning("registry:replace bank_id=%s", parser.bank_id)
            self._parsers = [p for p in self._parsers if p.bank_id != parser.bank_id]
        self._parsers.append(parser)

    def select(self, first_page_text: str) -> StatementParser | None:
        """Return the most confident parser, or ``None`` below ``min_confidence``.

        Ties keep the earlier registration.
        """

        best: StatementParser | None = None
        best_score = 0.0
        for parser in self._parsers:
            score = parser.confidence(first_page_text)
            if score > best_score:
                best, best_score = parser, score
        if best is not None and best_score >= self.min_confidence:
            _log.debug("registry:selected bank_id=%s confidence=%.2f", best.bank_id, best_score)
            return best
        return None

    def supported_banks(self) -> list[tuple[str, str]]:
        return [(p.bank_id, p.bank_name) for p in self._parsers]

    def __len__(self) -> int:
        return len(self._parsers)


def default_registry(settings: LedgerSettings | None = None) -> ParserRegistry:
    s = settings or LedgerSettings()
    registry = ParserRegistry(min_confidence=s.min_parser_confidence)
    for cls in DEFAULT_PARSERS:
        registry.register(cls(s))
    return registry


__all__ = ["ParserRegistry", "DEFAULT_PARSERS", "default_registry"]
