"""Statement format parsers.

Adding a bank: implement :class:`~statement_ledger.parsers.base.StatementParser`
in a new module and append the class to
:data:`~statement_ledger.parsers.registry.DEFAULT_PARSERS`.
"""

from .base import StatementParser, resolve_year, tokenize
from .registry import ParserRegistry, default_registry
from .uob import UOBParser
from .vendors import extract_counterparty

__all__ = [
    "StatementParser",
    "ParserRegistry",
    "UOBParser",
    "default_registry",
    "extract_counterparty",
    "resolve_year",
    "tokenize",
]
