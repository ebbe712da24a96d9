"""Public interface for the ``statement_ledger`` package.

Statement parsing, keyword categorization, the embedding classifier and
correction propagation. There is no runtime logic here, only re-exports.
"""

from .categories import CATEGORIES, OTHER, validate_category
from .classifier import EmbeddingClassifier, SentenceTransformerEmbedder, cosine_similarity
from .ingest import UnsupportedFormatError, load_statements, parse_pages, parse_statement
from .layout import extract_pages, linearize_page, read_statement_pages
from .models import (
    CacheKey,
    CategorySource,
    ClassificationResult,
    SimilarityCandidate,
    Statement,
    StatementKind,
    StatementPeriod,
    TextFragment,
    Transaction,
)
from .parsers import ParserRegistry, StatementParser, UOBParser, default_registry
from .persistence import LedgerStore, WriteBehindQueue
from .review import apply_corrections, correct_and_propagate
from .rules import categorize
from .settings import LedgerSettings
from .similarity import find_similar, find_similar_cached

__all__ = [
    # Pipeline
    "linearize_page",
    "extract_pages",
    "read_statement_pages",
    "parse_statement",
    "parse_pages",
    "load_statements",
    "UnsupportedFormatError",
    "ParserRegistry",
    "StatementParser",
    "UOBParser",
    "default_registry",
    # Categorization
    "CATEGORIES",
    "OTHER",
    "validate_category",
    "categorize",
    "EmbeddingClassifier",
    "SentenceTransformerEmbedder",
    "cosine_similarity",
    "find_similar",
    "find_similar_cached",
    "apply_corrections",
    "correct_and_propagate",
    # Storage / config
    "LedgerStore",
    "WriteBehindQueue",
    "LedgerSettings",
    # Models / types
    "Transaction",
    "Statement",
    "StatementKind",
    "StatementPeriod",
    "TextFragment",
    "CategorySource",
    "ClassificationResult",
    "SimilarityCandidate",
    "CacheKey",
]
