"""
Command-line interface for querylearn.

Provides learn, profile, ask, summary and seed commands for building and
querying the self-learning knowledge base of a MongoDB database.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from querylearn import __version__
from querylearn.errors import QueryLearnError
from querylearn.models import DEFAULT_COLLECTIONS, RunSummary
from querylearn.store import MongoDocumentStore

console = Console()

DEFAULT_DATA_DIR = Path("data") / "self-learning"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with Rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def parse_collections(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return [c.strip() for c in value.split(",") if c.strip()]


def open_store(uri: str, database: Optional[str]) -> MongoDocumentStore:
    try:
        return MongoDocumentStore(uri, database)
    except Exception as e:
        console.print(f"[red]Error: Could not connect to {uri}: {e}[/red]")
        sys.exit(1)


def print_summary(summary: RunSummary) -> None:
    table = Table(title="Self-Learning Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")

    table.add_row("Run ID", str(summary.run_id or "N/A"))
    table.add_row("Collections", str(summary.collections))
    table.add_row("Relationships", str(summary.relationships))
    table.add_row("Multi-level Relationships", str(summary.multi_level_relationships))
    table.add_row("Query Patterns", str(summary.query_patterns))
    table.add_row("Questions", str(summary.questions))
    if summary.validation_enabled:
        table.add_row("Successful Queries", str(summary.successful_queries))
        table.add_row("Failed Queries", str(summary.failed_queries))
        table.add_row("Timed Out", str(summary.timeout_queries))
        table.add_row("Optimized", str(summary.optimized_queries))
        table.add_row("Fallback", str(summary.fallback_queries))
        table.add_row("Skipped", str(summary.skipped_queries))
        table.add_row("Validation Failures", str(summary.validation_failures))
    table.add_row("Profiling Errors", str(summary.profiling_errors))
    table.add_row("Duration (s)", f"{summary.duration_seconds:.1f}")
    table.add_row("Timestamp", summary.timestamp)

    console.print(table)


uri_option = click.option(
    "--uri",
    type=str,
    envvar="MONGODB_URI",
    default="mongodb://localhost:27017",
    show_default=True,
    help="MongoDB connection string (or MONGODB_URI)",
)
database_option = click.option(
    "--database",
    type=str,
    envvar="MONGODB_DATABASE",
    default=None,
    help="Database name (defaults to the one in the URI)",
)
data_dir_option = click.option(
    "--data_dir",
    type=click.Path(path_type=Path),
    default=DEFAULT_DATA_DIR,
    show_default=True,
    help="Self-learning output directory",
)


@click.group()
@click.version_option(version=__version__, prog_name="querylearn")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def cli(verbose: bool) -> None:
    """
    querylearn - Self-learning query catalog for MongoDB

    Profile a database, discover relationships, and build query patterns with
    matching natural-language questions.
    """
    setup_logging(verbose)


@cli.command()
@uri_option
@database_option
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="YAML file with run configuration",
)
@click.option(
    "--output_dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Output directory for learning artifacts",
)
@click.option(
    "--collections",
    type=str,
    default=None,
    help=f"Comma-separated collections (default: {','.join(DEFAULT_COLLECTIONS)})",
)
@click.option(
    "--all_collections",
    is_flag=True,
    default=False,
    help="Learn every collection in the database",
)
@click.option(
    "--no_validate",
    is_flag=True,
    default=False,
    help="Skip executing generated questions against the database",
)
@click.option("--sample_size", type=int, default=None, help="Result rows kept per question")
@click.option("--max_time_ms", type=int, default=None, help="Time budget per query attempt")
@click.option("--max_retries", type=int, default=None, help="Retries after a timeout")
@click.option(
    "--skip_large",
    is_flag=True,
    default=False,
    help="Skip executing questions on large collections",
)
@click.option("--run_id", type=str, default=None, help="Custom run ID (default: timestamp)")
def learn(
    uri: str,
    database: Optional[str],
    config_file: Optional[Path],
    output_dir: Optional[Path],
    collections: Optional[str],
    all_collections: bool,
    no_validate: bool,
    sample_size: Optional[int],
    max_time_ms: Optional[int],
    max_retries: Optional[int],
    skip_large: bool,
    run_id: Optional[str],
) -> None:
    """
    Run the self-learning pipeline once.

    Examples:

        # Learn the default game collections
        querylearn learn --uri mongodb://localhost:27017/game

        # Learn every collection without executing queries
        querylearn learn --all_collections --no_validate
    """
    from querylearn.config import load_config
    from querylearn.learner import SelfLearningRun

    try:
        config = load_config(
            config_file,
            output_dir=output_dir,
            collections=parse_collections(collections),
            validate_queries=False if no_validate else None,
            sample_size=sample_size,
            max_time_ms=max_time_ms,
            max_query_retries=max_retries,
            skip_large_collections=True if skip_large else None,
            run_id=run_id,
        )
    except QueryLearnError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if all_collections:
        config.collections = None

    console.print("[bold blue]querylearn Self-Learning Run[/bold blue]")
    console.print(f"Collections: {', '.join(config.collections) if config.collections else 'all'}")
    console.print(f"Output: {config.output_dir}")

    store = open_store(uri, database)
    try:
        with store:
            snapshot = SelfLearningRun(store, config).run()
    except QueryLearnError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    print_summary(snapshot.summary)
    console.print(f"\n[green]Results saved to: {config.output_dir}[/green]")


@cli.command()
@uri_option
@database_option
@click.option("--collections", type=str, default=None, help="Comma-separated collections (default: all)")
@click.option("--sample_size", type=int, default=20, show_default=True, help="Documents sampled per collection")
@click.option("--random_sample", is_flag=True, default=False, help="Sample randomly instead of first documents")
def profile(
    uri: str,
    database: Optional[str],
    collections: Optional[str],
    sample_size: int,
    random_sample: bool,
) -> None:
    """
    Profile collections and show their inferred fields.

    Example:

        querylearn profile --collections players,events
    """
    from querylearn.profiler import SchemaProfiler

    store = open_store(uri, database)
    with store:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Profiling collections...", total=None)
            profiler = SchemaProfiler(store, sample_size=sample_size, random_sample=random_sample)
            profiles = profiler.profile_all(parse_collections(collections))
            progress.update(task, completed=True)

    table = Table(title="Collection Profiles")
    table.add_column("Collection", style="cyan")
    table.add_column("Documents", style="green", justify="right")
    table.add_column("Size", style="yellow")
    table.add_column("Fields", style="magenta", justify="right")
    table.add_column("Error", style="red")

    for name, p in profiles.items():
        table.add_row(name, f"{p.count:,}", p.size_class.value, str(len(p.fields)), p.error or "")

    console.print(table)

    for name, p in profiles.items():
        if p.error or not p.fields:
            continue
        fields_table = Table(title=f"{name} fields")
        fields_table.add_column("Path", style="cyan")
        fields_table.add_column("Types", style="green")
        fields_table.add_column("Nullable", style="yellow")
        fields_table.add_column("Examples", style="white")
        for path, f in p.fields.items():
            fields_table.add_row(
                path,
                ", ".join(t.value for t in f.types),
                "yes" if f.nullable else "",
                ", ".join(str(e) for e in f.examples)[:60],
            )
        console.print(fields_table)


@cli.command()
@data_dir_option
@click.option("--threshold", type=float, default=0.7, show_default=True, help="Minimum similarity")
@click.argument("text")
def ask(data_dir: Path, threshold: float, text: str) -> None:
    """
    Find the learned query for a natural-language question.

    Example:

        querylearn ask "How many players are there?"
    """
    from querylearn.retrieval import KnowledgeBase

    kb = KnowledgeBase(data_dir)
    if not kb.load():
        console.print(f"[red]Error: No learning snapshot found in {data_dir}[/red]")
        sys.exit(1)

    match = kb.get_query_pattern_for_query(text, threshold=threshold)
    if match is None:
        console.print("[yellow]No matching query pattern found[/yellow]")
        sys.exit(1)

    built = kb.build_query(text, threshold=threshold)

    table = Table(title="Matched Query")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Question", match.question.text)
    table.add_row("Confidence", f"{match.confidence:.2f}")
    table.add_row("Pattern", match.pattern.id)
    table.add_row("Description", match.pattern.description)
    table.add_row("Template", match.pattern.render())
    console.print(table)

    if built is not None:
        console.print_json(json.dumps(built["query"], default=str))


@cli.command()
@data_dir_option
def summary(data_dir: Path) -> None:
    """
    Show the summary of the latest learning run.

    Example:

        querylearn summary --data_dir data/self-learning
    """
    from querylearn.retrieval import KnowledgeBase

    kb = KnowledgeBase(data_dir)
    if not kb.load() or kb.get_summary() is None:
        console.print(f"[red]Error: No learning summary found in {data_dir}[/red]")
        sys.exit(1)

    print_summary(kb.get_summary())

    if kb.get_all_relationships():
        rel_table = Table(title="Relationships")
        rel_table.add_column("Type", style="cyan")
        rel_table.add_column("Path", style="green")
        rel_table.add_column("Confidence", style="yellow")
        rel_table.add_column("Description", style="white")
        for rel in kb.get_all_relationships():
            data = rel.to_dict()
            if data["type"] == "direct":
                path = f"{rel.source} -> {rel.target}"
            else:
                path = " -> ".join(rel.collections)
            rel_table.add_row(data["type"], path, data["confidence"], rel.description or "")
        console.print(rel_table)


@cli.command()
@uri_option
@database_option
@click.option("--seed", type=int, default=42, show_default=True, help="Random seed")
@click.option("--players", type=int, default=50, show_default=True, help="Number of players")
@click.option("--events_per_player", type=int, default=20, show_default=True, help="Average events per player")
@click.option("--drop", is_flag=True, default=False, help="Drop collections before inserting")
def seed(
    uri: str,
    database: Optional[str],
    seed: int,
    players: int,
    events_per_player: int,
    drop: bool,
) -> None:
    """
    Insert a deterministic sample game dataset.

    Example:

        querylearn seed --uri mongodb://localhost:27017/game --drop
    """
    from querylearn.sampledata import build_dataset

    dataset = build_dataset(seed=seed, players=players, events_per_player=events_per_player)

    store = open_store(uri, database)
    table = Table(title="Seeded Collections")
    table.add_column("Collection", style="cyan")
    table.add_column("Documents", style="green", justify="right")

    try:
        with store:
            for name, documents in dataset.items():
                inserted = store.insert_many(name, documents, drop=drop)
                table.add_row(name, f"{inserted:,}")
    except QueryLearnError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    console.print(table)


if __name__ == "__main__":
    cli()
