"""Statement ingestion: page text -> parser selection -> :class:`Statement`.

The statement kind and period are read from the first page only; rows are
parsed from all pages. Statement ids are content hashes of the page texts, so
re-importing the same document yields the same id.
"""

from __future__ import annotations

import hashlib
import os
from collections.abc import Iterable, Sequence
from pathlib import Path

from .layout import read_statement_pages
from .logging_setup import get_logger
from .models import Statement
from .parsers.registry import ParserRegistry, default_registry
from .pmap import p_map
from .settings import LedgerSettings

_log = get_logger("statement_ledger.ingest")

DEFAULT_CONCURRENCY = 4


class UnsupportedFormatError(ValueError):
    """No registered parser recognized the document."""

    def __init__(self, source_name: str | None, supported: Sequence[tuple[str, str]]) -> None:
        names = ", ".join(name for _id, name in supported) or "none"
        where = f" {source_name!r}" if source_name else ""
        super().__init__(f"Unsupported statement format{where}. Supported banks: {names}")
        self.source_name = source_name
        self.supported = list(supported)


def statement_id_for(pages: Sequence[str]) -> str:
    h = hashlib.sha256()
    for page in pages:
        h.update(page.encode("utf-8"))
        h.update(b"\f")
    return h.hexdigest()


def parse_pages(
    pages: Sequence[str],
    *,
    registry: ParserRegistry | None = None,
    source_name: str | None = None,
) -> Statement:
    """Parse already-extracted page texts into a :class:`Statement`.

    Raises :class:`UnsupportedFormatError` when no parser is confident enough.
    """

    reg = registry or default_registry()
    first_page = pages[0] if pages else ""
    parser = reg.select(first_page)
    if parser is None:
        raise UnsupportedFormatError(source_name, reg.supported_banks())

    kind = parser.detect_statement_type(first_page)
    period = parser.extract_period(first_page)
    sid = statement_id_for(pages)
    transactions = parser.parse_transactions(pages, kind, period, statement_id=sid)
    _log.info(
        "ingest:parsed source=%s bank=%s kind=%s transactions=%s",
        source_name,
        parser.bank_id,
        kind,
        len(transactions),
    )
    return Statement(
        id=sid,
        kind=kind,
        period=period,
        transactions=transactions,
        bank_id=parser.bank_id,
        source_name=source_name,
    )


def parse_statement(
    source: str | os.PathLike[str],
    *,
    registry: ParserRegistry | None = None,
    settings: LedgerSettings | None = None,
    source_name: str | None = None,
) -> Statement:
    """Read a statement file (PDF, or ``.txt`` pages) and parse it."""

    s = settings or LedgerSettings()
    pages = read_statement_pages(source, line_tolerance=s.line_tolerance)
    return parse_pages(
        pages,
        registry=registry or default_registry(s),
        source_name=source_name or Path(source).name,
    )


def load_statements(
    paths: Iterable[str | os.PathLike[str]],
    *,
    registry: ParserRegistry | None = None,
    settings: LedgerSettings | None = None,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[Statement]:
    """Parse several statement files, preserving input order.

    Text extraction fans out across files; parsing then runs sequentially.
    The first failure (unreadable file, unsupported format) propagates.
    """

    s = settings or LedgerSettings()
    reg = registry or default_registry(s)
    path_list = [Path(p) for p in paths]

    def _extract(p: Path) -> list[str]:
        return read_statement_pages(p, line_tolerance=s.line_tolerance)

    all_pages = p_map(path_list, _extract, concurrency=concurrency)
    return [
        parse_pages(pages, registry=reg, source_name=p.name)
        for p, pages in zip(path_list, all_pages, strict=True)
    ]


__all__ = [
    "UnsupportedFormatError",
    "DEFAULT_CONCURRENCY",
    "statement_id_for",
    "parse_pages",
    "parse_statement",
    "load_statements",
]
