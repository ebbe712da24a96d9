"""Page text reconstruction from positioned text fragments.

Statement PDFs carry text as independently positioned runs. Row matching
needs one linear string per page in reading order, so fragments are grouped
into visual lines (top to bottom) and ordered left to right within a line.

PDF text extraction is done with ``pdfplumber``; words are converted to PDF
user space (origin at the bottom-left, larger ``y`` is higher on the page) so
the grouping logic does not depend on the extraction backend.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from io import BytesIO
from pathlib import Path
from typing import Any

import pdfplumber

from .logging_setup import get_logger
from .models import TextFragment

_log = get_logger("statement_ledger.layout")

# Form feed separates pages in pre-linearized text statements.
PAGE_SEPARATOR = "\f"

DEFAULT_LINE_TOLERANCE = 5.0


def linearize_page(
    fragments: Iterable[TextFragment], *, line_tolerance: float = DEFAULT_LINE_TOLERANCE
) -> str:
    """Join ``fragments`` into one reading-order string.

    Fragments are sorted by ``y`` descending. A fragment whose ``y`` differs
    from the current line's anchor (its first fragment) by less than
    ``line_tolerance`` joins that line; otherwise it starts a new one. Lines
    are sorted by ``x`` ascending and all non-empty texts are joined with
    single spaces.
    """

    ordered = sorted(fragments, key=lambda f: -f.y)
    if not ordered:
        return ""

    lines: list[list[TextFragment]] = []
    anchor_y: float | None = None
    for frag in ordered:
        if anchor_y is None or abs(anchor_y - frag.y) >= line_tolerance:
            lines.append([frag])
            anchor_y = frag.y
        else:
            lines[-1].append(frag)

    parts: list[str] = []
    for line in lines:
        for frag in sorted(line, key=lambda f: f.x):
            text = frag.text.strip()
            if text:
                parts.append(text)
    return " ".join(parts)


def page_fragments(page: Any) -> list[TextFragment]:
    """Convert a pdfplumber page's words into :class:`TextFragment` values."""

    height = float(page.height)
    words = page.extract_words(keep_blank_chars=False, use_text_flow=False)
    return [
        TextFragment(text=w["text"], x=float(w["x0"]), y=height - float(w["top"]))
        for w in words
    ]


def extract_pages(
    source: bytes | str | os.PathLike[str], *, line_tolerance: float = DEFAULT_LINE_TOLERANCE
) -> list[str]:
    """Open a PDF with pdfplumber and return one linearized string per page."""

    stream: Any = BytesIO(source) if isinstance(source, bytes) else source
    pages: list[str] = []
    with pdfplumber.open(stream) as pdf:
        for page in pdf.pages:
            pages.append(linearize_page(page_fragments(page), line_tolerance=line_tolerance))
    _log.debug("layout:extracted pages=%s", len(pages))
    return pages


def read_statement_pages(
    path: str | os.PathLike[str], *, line_tolerance: float = DEFAULT_LINE_TOLERANCE
) -> list[str]:
    """Return page texts for a statement file.

    ``.txt`` files are treated as already linearized, one page per form-feed
    separated chunk. Everything else is opened as a PDF.
    """

    p = Path(path)
    if p.suffix.lower() == ".txt":
        text = p.read_text(encoding="utf-8")
        return [" ".join(chunk.split()) for chunk in text.split(PAGE_SEPARATOR)]
    return extract_pages(p, line_tolerance=line_tolerance)


__all__ = [
    "PAGE_SEPARATOR",
    "DEFAULT_LINE_TOLERANCE",
    "linearize_page",
    "page_fragments",
    "extract_pages",
    "read_statement_pages",
]
