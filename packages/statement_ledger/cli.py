"""CLI for the ``statement_ledger`` package.

Typer-based console interface. The root callback loads a local ``.env`` with
``python-dotenv`` (without overriding the environment) and configures
logging; thresholds and storage locations then come from
:meth:`LedgerSettings.from_env`.

Statement files may be PDFs or ``.txt`` files holding already linearized
pages separated by form feeds.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError
from typer.models import ArgumentInfo

from .categories import CATEGORIES, validate_category
from .classifier import Embedder, EmbeddingClassifier, SentenceTransformerEmbedder
from .ingest import UnsupportedFormatError, load_statements
from .logging_setup import configure_logging, get_logger
from .models import Transaction
from .parsers.registry import default_registry
from .persistence import LedgerStore, WriteBehindQueue
from .settings import LedgerSettings

_log = get_logger("statement_ledger.cli")

# ---- Small module-level helpers used by CLI commands -------------------------


def make_embedder(settings: LedgerSettings) -> Embedder:
    """Embedding backend used by the CLI (tests substitute a fake)."""

    return SentenceTransformerEmbedder(settings.embedding_model)


def _open_store(settings: LedgerSettings) -> LedgerStore | None:
    """Return a usable store, or ``None`` (with a note on stderr) when it is not."""

    try:
        store = LedgerStore(settings.resolved_database_url())
        store.ensure_schema()
    except (SQLAlchemyError, OSError):
        _log.warning("cli:store_unavailable", exc_info=True)
        typer.echo("Storage unavailable; corrections will not be saved.", err=True)
        return None
    return store


def _build_classifier(settings: LedgerSettings) -> tuple[EmbeddingClassifier, WriteBehindQueue]:
    writer = WriteBehindQueue()
    classifier = EmbeddingClassifier(
        make_embedder(settings),
        settings=settings,
        store=_open_store(settings),
        writer=writer,
    )
    classifier.initialize()
    return classifier, writer


def _load_transactions(paths: Sequence[Path], settings: LedgerSettings) -> list[Transaction]:
    try:
        statements = load_statements(paths, registry=default_registry(settings), settings=settings)
    except UnsupportedFormatError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    except FileNotFoundError as e:
        typer.echo(f"Error: File not found: {e.filename}", err=True)
        raise typer.Exit(1) from e
    return [tx for st in statements for tx in st.transactions]


def format_transaction(index: int, tx: Transaction) -> str:
    return (
        f"{index:>4}  {tx.date.isoformat()}  {tx.amount:>12}  "
        f"{tx.category:<20}  {tx.category_source.value:<9}  {tx.description}"
    )


def _echo_transactions(transactions: Sequence[Transaction]) -> None:
    for i, tx in enumerate(transactions):
        typer.echo(format_transaction(i, tx))


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Parse bank and credit-card statements into categorized transactions. "
        "Loads settings from a local .env before running."
    ),
)

# Module-level argument object to satisfy ruff B008 (no calls in parameter
# defaults).
FILES_ARGUMENT: ArgumentInfo = typer.Argument(
    ...,
    help="Statement files (PDF, or .txt pages separated by form feeds)",
    dir_okay=False,
    file_okay=True,
    exists=False,  # missing files are reported by the handler
)


@app.command("parse")
def parse_cmd(files: Annotated[list[Path], FILES_ARGUMENT]) -> None:
    """Parse statements and print rule-categorized transactions."""

    settings = LedgerSettings.from_env()
    _echo_transactions(_load_transactions(files, settings))


@app.command("categorize")
def categorize_cmd(files: Annotated[list[Path], FILES_ARGUMENT]) -> None:
    """Parse statements, then refine categories with the embedding classifier."""

    settings = LedgerSettings.from_env()
    transactions = _load_transactions(files, settings)
    classifier, writer = _build_classifier(settings)
    try:
        if not classifier.ready:
            typer.echo("Embedding model unavailable; showing rule categories.", err=True)
        changed = asyncio.run(classifier.recategorize(transactions))
        _echo_transactions(transactions)
        typer.echo(f"{changed} transaction(s) recategorized.", err=True)
    finally:
        classifier.dispose()
        writer.close()


@app.command("correct")
def correct_cmd(
    file: Annotated[Path, typer.Argument(help="Statement file", dir_okay=False)],
    index: Annotated[int, typer.Option("--index", "-i", help="Transaction index (see `parse`)")],
    category: Annotated[
        str | None, typer.Option("--category", "-c", help="New category (prompted when omitted)")
    ] = None,
    yes: Annotated[
        bool, typer.Option("--yes", "-y", help="Apply to all similar transactions without asking")
    ] = False,
) -> None:
    """Correct one transaction and offer the same fix for similar ones."""

    # Deferred imports keep `parse`/`banks` startup light.
    from .review import apply_corrections, correct_and_propagate
    from .term_ui import confirm_candidates, select_category

    settings = LedgerSettings.from_env()
    transactions = _load_transactions([file], settings)
    if not 0 <= index < len(transactions):
        typer.echo(f"Error: index {index} out of range (0..{len(transactions) - 1})", err=True)
        raise typer.Exit(1)

    target = transactions[index]
    if category is None:
        category = select_category(CATEGORIES, default=target.category)
    try:
        label = validate_category(category)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    classifier, writer = _build_classifier(settings)
    try:
        if not classifier.ready:
            apply_corrections([(target, label)], classifier)
            typer.echo(
                "Embedding model unavailable; corrected the selected transaction only.", err=True
            )
            applied = [target]
        else:

            def _confirm(candidates, cat):
                if yes:
                    return [c.index for c in candidates]
                return confirm_candidates(candidates, cat)

            outcome = asyncio.run(
                correct_and_propagate(transactions, index, label, classifier, confirm=_confirm)
            )
            applied = outcome.applied
    finally:
        classifier.dispose()
        writer.close()

    position = {id(tx): i for i, tx in enumerate(transactions)}
    for tx in applied:
        typer.echo(format_transaction(position[id(tx)], tx))
    typer.echo(f"{len(applied)} transaction(s) set to {label}.", err=True)


@app.command("corrections")
def corrections_cmd() -> None:
    """List learned corrections as ``category<TAB>description``."""

    url = LedgerSettings.from_env().resolved_database_url()
    try:
        mappings = LedgerStore(url).load_corrections()
    except (SQLAlchemyError, OSError) as e:
        _log.warning("cli:store_unavailable", exc_info=True)
        typer.echo(f"Error: storage unavailable at {url}", err=True)
        raise typer.Exit(1) from e
    for desc, cat in sorted(mappings.items()):
        typer.echo(f"{cat}\t{desc}")


@app.command("clear-cache")
def clear_cache_cmd(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")] = False,
) -> None:
    """Delete all learned corrections and cached embedding vectors."""

    if not yes and not typer.confirm("Delete all learned corrections and cached vectors?"):
        raise typer.Exit(1)
    url = LedgerSettings.from_env().resolved_database_url()
    try:
        LedgerStore(url).clear()
    except (SQLAlchemyError, OSError) as e:
        _log.warning("cli:store_unavailable", exc_info=True)
        typer.echo(f"Error: storage unavailable at {url}", err=True)
        raise typer.Exit(1) from e
    typer.echo("Cleared.", err=True)


@app.command("banks")
def banks_cmd() -> None:
    """List supported statement formats."""

    for bank_id, name in default_registry().supported_banks():
        typer.echo(f"{bank_id}\t{name}")


@app.callback()
def _root() -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover - exercised via console script
    # Running as a module: `python -m statement_ledger.cli`
    app()
