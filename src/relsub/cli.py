"""
Command-line interface for relsub.

Provides relationships and plan commands: infer the relationship graph of a
schema, and plan the subscription filters for a nested query.
"""

from __future__ import annotations

import functools
import json
import logging
import sys
from pathlib import Path
from typing import Callable, Optional, Tuple

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from relsub import __version__
from relsub.config import RelsubConfig, load_config
from relsub.errors import RelsubError
from relsub.models import Cardinality, PlannerConfig, RelationshipGraph

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with Rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def catalog_options(command):
    """Options selecting the schema catalog and schemas, shared by all commands."""
    options = [
        click.option(
            "--config",
            "config_file",
            type=click.Path(exists=True, path_type=Path),
            default=None,
            help="YAML configuration file (options given on the command line win)",
        ),
        click.option(
            "--schema",
            "schemas",
            type=str,
            multiple=True,
            help="Schema to inspect (repeatable)",
        ),
        click.option(
            "--catalog_file",
            type=click.Path(exists=True, path_type=Path),
            default=None,
            help="YAML schema description to use instead of a live database",
        ),
        click.option(
            "--oracle_conn",
            type=str,
            default=None,
            help="Oracle connection string (user/pwd@host:port/service)",
        ),
        click.option(
            "--pg_dsn",
            type=str,
            default=None,
            help="PostgreSQL connection string or URI",
        ),
    ]
    for option in reversed(options):
        command = option(command)
    return command


def resolve_config(
    config_file: Optional[Path],
    schemas: Tuple[str, ...],
    catalog_file: Optional[Path],
    oracle_conn: Optional[str],
    pg_dsn: Optional[str],
) -> RelsubConfig:
    """Merge the configuration file with command line overrides."""
    config = load_config(config_file) if config_file else RelsubConfig()
    if schemas:
        config.schemas = list(schemas)
    if catalog_file or oracle_conn or pg_dsn:
        config.catalog_file = catalog_file
        config.oracle_conn = oracle_conn
        config.pg_dsn = pg_dsn
    return config


def infer_graph(config: RelsubConfig) -> Tuple[RelationshipGraph, Callable[[str], str]]:
    """
    Open the configured catalog and infer the relationship graph.

    Returns:
        The graph and the catalog's identifier normalisation, for planning
    """
    from relsub.catalog import (
        OracleSchemaCatalog,
        PostgresSchemaCatalog,
        StaticSchemaCatalog,
    )
    from relsub.inference import infer_relationships

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Inferring relationships...", total=None)

        if config.catalog_file:
            catalog = StaticSchemaCatalog.from_yaml(
                config.catalog_file,
                default_schema=config.planner.default_schema,
            )
            graph = infer_relationships(catalog, config.schemas)
        elif config.oracle_conn:
            with OracleSchemaCatalog(config.oracle_conn) as catalog:
                graph = infer_relationships(catalog, config.schemas)
        elif config.pg_dsn:
            with PostgresSchemaCatalog(config.pg_dsn) as catalog:
                graph = infer_relationships(catalog, config.schemas)
        else:
            raise click.UsageError("No catalog given. Use --catalog_file, --oracle_conn or --pg_dsn")

        progress.update(task, completed=True)

    return graph, catalog.normalize_identifier


def handle_errors(func):
    """Report relsub errors as a console message and a non-zero exit."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except RelsubError as e:
            console.print(f"[red]Error: {e}[/red]")
            sys.exit(1)
    return wrapper


@click.group()
@click.version_option(version=__version__, prog_name="relsub")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def cli(verbose: bool) -> None:
    """
    relsub - Relationship inference and subscription planning

    Infer foreign-key, inverse and many-to-many relationships of a schema,
    and plan the row filters that keep a nested query reactive.
    """
    setup_logging(verbose)


@cli.command()
@catalog_options
@click.option(
    "--cardinality",
    type=click.Choice([c.value for c in Cardinality]),
    default=None,
    help="Only show relationships of this cardinality",
)
@click.option(
    "--output",
    type=click.Path(path_type=Path),
    default=None,
    help="Save the relationship graph to a YAML file",
)
@handle_errors
def relationships(
    config_file: Optional[Path],
    schemas: Tuple[str, ...],
    catalog_file: Optional[Path],
    oracle_conn: Optional[str],
    pg_dsn: Optional[str],
    cardinality: Optional[str],
    output: Optional[Path],
) -> None:
    """
    Infer and display the relationships of one or more schemas.

    Examples:

        # From a schema description file
        relsub relationships --schema public --catalog_file schema.yaml

        # From PostgreSQL, many-to-many only, saved to a file
        relsub relationships --schema public --pg_dsn postgresql://localhost/app \\
            --cardinality ManyToMany --output relationships.yaml
    """
    config = resolve_config(config_file, schemas, catalog_file, oracle_conn, pg_dsn)

    console.print("[bold blue]relsub - Relationship Inference[/bold blue]")
    console.print(f"Schemas: {', '.join(config.schemas)}")

    graph, _ = infer_graph(config)
    rels = graph.filter(Cardinality(cardinality) if cardinality else None)

    if rels:
        rel_table = Table(title="Inferred Relationships")
        rel_table.add_column("Source", style="cyan")
        rel_table.add_column("Target", style="green")
        rel_table.add_column("Cardinality", style="blue")
        rel_table.add_column("Constraint", style="yellow")
        rel_table.add_column("Junction", style="magenta")

        for rel in rels:
            rel_table.add_row(
                f"{rel.source_schema}.{rel.source_table}({', '.join(rel.source_columns)})",
                f"{rel.target_schema}.{rel.target_table}({', '.join(rel.target_columns)})",
                rel.cardinality.value,
                rel.constraint_name,
                f"{rel.junction_schema}.{rel.junction_table}" if rel.junction_table else "-",
            )

        console.print(rel_table)
    else:
        console.print("\n[yellow]No relationships found.[/yellow]")

    if output:
        output = Path(output)
        data = {"schemas": config.schemas}
        data.update(RelationshipGraph(rels).to_dict())
        with open(output, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

        console.print(f"\n[green]Saved {len(rels)} relationships to: {output}[/green]")


@cli.command()
@catalog_options
@click.option(
    "--query",
    "query_file",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="JSON or YAML file with the nested query",
)
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Fail on relations that cannot be resolved or that revisit a table",
)
@click.option(
    "--ambiguity",
    type=click.Choice(["first", "error"]),
    default=None,
    help="What to do when a relation matches several relationships",
)
@click.option(
    "--collapse",
    is_flag=True,
    default=False,
    help="Drop repeated filters from the output",
)
@click.option(
    "--output",
    type=click.Path(path_type=Path),
    default=None,
    help="Save the filters to a JSON file",
)
@handle_errors
def plan(
    config_file: Optional[Path],
    schemas: Tuple[str, ...],
    catalog_file: Optional[Path],
    oracle_conn: Optional[str],
    pg_dsn: Optional[str],
    query_file: Path,
    strict: bool,
    ambiguity: Optional[str],
    collapse: bool,
    output: Optional[Path],
) -> None:
    """
    Plan the subscription filters for a nested query.

    The query file holds {schema, table, filters, nested}, where each filter
    is {column, op, value} and each nested entry is
    {relation, filters, nested}.

    Example:

        relsub plan --schema public --catalog_file schema.yaml \\
            --query user_orgs.json --output filters.json
    """
    from relsub.planner import SubscriptionPlanner, collapse_filters

    config = resolve_config(config_file, schemas, catalog_file, oracle_conn, pg_dsn)
    planner_config = PlannerConfig(
        strict=config.planner.strict or strict,
        ambiguity=ambiguity or config.planner.ambiguity,
        default_schema=config.planner.default_schema,
    )

    with open(query_file, "r") as f:
        try:
            query = yaml.safe_load(f)
        except yaml.YAMLError as e:
            console.print(f"[red]Error: could not parse {query_file}: {e}[/red]")
            sys.exit(1)

    graph, normalize_identifier = infer_graph(config)
    filters = SubscriptionPlanner(graph, planner_config, normalize_identifier).plan(query)
    if collapse:
        filters = collapse_filters(filters)

    filter_table = Table(title="Subscription Filters")
    filter_table.add_column("Schema", style="cyan")
    filter_table.add_column("Table", style="green")
    filter_table.add_column("Column", style="yellow")
    filter_table.add_column("Operator", style="blue")
    filter_table.add_column("Value", style="magenta")

    for f in filters:
        filter_table.add_row(f.schema, f.table, f.column, f.operator.value, json.dumps(f.value, default=str))

    console.print(filter_table)

    if output:
        output = Path(output)
        with open(output, "w") as f:
            json.dump([flt.to_dict() for flt in filters], f, indent=2, default=str)

        console.print(f"\n[green]Saved {len(filters)} filters to: {output}[/green]")


if __name__ == "__main__":
    cli()
