"""Command-line interface for featuregraph."""

import json
from pathlib import Path
from typing import Any, List, NoReturn, Optional

import click
import yaml
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from sqlalchemy.orm import sessionmaker

from featuregraph import __version__
from featuregraph.config import ConfigError, FeatureGraphConfig, load_config
from featuregraph.db.models import Feature, InsightSeverity
from featuregraph.db.session import configure_database, get_sync_session, init_db
from featuregraph.errors import FeatureGraphError
from featuregraph.features import FeatureSnapshot, SqlFeatureStore
from featuregraph.logging_config import configure_logging, get_logger
from featuregraph.services.connections import ConnectionService
from featuregraph.services.correlation import CorrelationDetector
from featuregraph.services.importance import ImportanceScorer
from featuregraph.services.insights import InsightGenerator
from featuregraph.services.orchestrator import AnalysisOrchestrator

console = Console()
logger = get_logger(__name__)

SEVERITY_COLORS = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "cyan",
    "info": "dim",
}


def _session_factory(ctx: click.Context) -> sessionmaker:
    if ctx.obj.get("session_factory") is None:
        ctx.obj["session_factory"] = configure_database(ctx.obj["config"].database)
    return ctx.obj["session_factory"]


def _fail(message: str) -> NoReturn:
    console.print(f"[red]✗[/red] {message}")
    raise click.Abort()


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    default=None,
    help="Path to config file (.featuregraphrc or featuregraph.toml)",
)
@click.option("--database-url", default=None, help="Database URL (overrides config)")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Set logging level (overrides config file)",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "human"], case_sensitive=False),
    default=None,
    help="Log output format (overrides config file)",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Optional[str],
    database_url: Optional[str],
    log_level: Optional[str],
    log_format: Optional[str],
) -> None:
    """featuregraph - Relationship graph and analytics for roadmap features

    Configuration priority (highest to lowest):
    1. Command-line options
    2. Config file (--config, .featuregraphrc, featuregraph.toml)
    3. Environment variables (FEATUREGRAPH_*)
    4. Built-in defaults
    """
    try:
        loaded = load_config(config_file=config)
    except ConfigError as e:
        console.print(f"[yellow]⚠️  Config error: {e}[/yellow]")
        console.print("[dim]Using default configuration[/dim]\n")
        loaded = FeatureGraphConfig()

    if database_url:
        loaded.database.url = database_url

    configure_logging(
        level=log_level or loaded.logging.level,
        format=(log_format or loaded.logging.format).lower(),
        file=loaded.logging.file,
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = loaded
    ctx.obj.setdefault("session_factory", None)


@cli.command("init-db")
@click.pass_context
def init_db_command(ctx: click.Context) -> None:
    """Create the database schema."""
    factory = _session_factory(ctx)
    init_db(factory.kw["bind"])
    console.print(f"[green]✓[/green] Schema ready at {ctx.obj['config'].database.url}")


@cli.command("load-features")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def load_features(ctx: click.Context, path: str) -> None:
    """Upsert feature snapshots from a JSON or YAML list into the features table."""
    text = Path(path).read_text()
    records: Any = json.loads(text) if path.endswith(".json") else yaml.safe_load(text)
    if not isinstance(records, list):
        _fail("Feature file must contain a list of features")

    with get_sync_session(_session_factory(ctx)) as session:
        for record in records:
            snapshot = FeatureSnapshot.from_mapping(record)
            session.merge(
                Feature(
                    id=snapshot.id,
                    workspace_id=snapshot.workspace_id,
                    name=snapshot.name,
                    purpose=snapshot.purpose,
                    business_value=snapshot.business_value,
                    priority=snapshot.priority,
                    workflow_stage=snapshot.workflow_stage,
                    difficulty=snapshot.difficulty,
                    categories=list(snapshot.categories),
                )
            )
    console.print(f"[green]✓[/green] Loaded {len(records)} features")


@cli.command()
@click.argument("workspace_id")
@click.argument("source_feature_id")
@click.argument("target_feature_id")
@click.option("--type", "connection_type", default="dependency", show_default=True, help="Connection type")
@click.option("--strength", type=float, default=0.5, show_default=True)
@click.option("--reason", default=None, help="Why the features are connected")
@click.option("--bidirectional", is_flag=True, help="Also create the reverse edge")
@click.pass_context
def connect(
    ctx: click.Context,
    workspace_id: str,
    source_feature_id: str,
    target_feature_id: str,
    connection_type: str,
    strength: float,
    reason: Optional[str],
    bidirectional: bool,
) -> None:
    """Connect two features of a workspace."""
    try:
        with get_sync_session(_session_factory(ctx)) as session:
            service = ConnectionService(session, SqlFeatureStore(session))
            create = service.create_bidirectional_connection if bidirectional else service.create_connection
            connection_id = create(
                workspace_id,
                source_feature_id,
                target_feature_id,
                connection_type,
                strength=strength,
                reason=reason,
            )
    except FeatureGraphError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Created connection {connection_id}")


@cli.command()
@click.argument("workspace_id")
@click.option("--budget", type=float, default=None, help="Time budget in seconds (overrides config)")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.pass_context
def analyze(ctx: click.Context, workspace_id: str, budget: Optional[float], as_json: bool) -> None:
    """Run a full re-analysis of a workspace."""
    config: FeatureGraphConfig = ctx.obj["config"]
    if budget is not None:
        config.analysis.time_budget_seconds = budget

    orchestrator = AnalysisOrchestrator(config=config, session_factory=_session_factory(ctx))
    try:
        if as_json:
            result = orchestrator.analyze_workspace(workspace_id, triggered_by="cli")
        else:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                progress.add_task(f"[cyan]Analyzing workspace {workspace_id}...", total=None)
                result = orchestrator.analyze_workspace(workspace_id, triggered_by="cli")
    except FeatureGraphError as e:
        _fail(str(e))
    finally:
        orchestrator.shutdown()

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    breakdown = result.insights.get("breakdown", {})
    console.print(
        Panel(
            f"Features scored: [bold]{result.features_scored}[/bold]\n"
            f"New correlations: [bold]{result.correlations_detected}[/bold]\n"
            f"Insights created: [bold]{result.insights.get('insights_created', 0)}[/bold] "
            f"(critical path {breakdown.get('critical_path', 0)}, "
            f"bottlenecks {breakdown.get('bottlenecks', 0)}, "
            f"orphaned {breakdown.get('orphaned', 0)}, "
            f"cycles {breakdown.get('circular_dependencies', 0)})\n"
            f"Duration: {result.duration_seconds:.2f}s",
            title=f"Analysis of {workspace_id}",
            border_style="green",
        )
    )


@cli.command()
@click.argument("workspace_id")
@click.option("--limit", type=int, default=10, show_default=True)
@click.pass_context
def top(ctx: click.Context, workspace_id: str, limit: int) -> None:
    """Show the most important features of a workspace."""
    config: FeatureGraphConfig = ctx.obj["config"]
    with get_sync_session(_session_factory(ctx)) as session:
        store = SqlFeatureStore(session)
        scores = ImportanceScorer(session, store, config.scoring, config.graph).get_top_important_features(
            workspace_id, limit
        )
        names = {f.id: f.name for f in store.list_features(workspace_id)}

    if not scores:
        console.print("[dim]No importance scores yet; run 'featuregraph analyze' first[/dim]")
        return

    table = Table(title=f"Top features in {workspace_id}", box=box.ROUNDED)
    table.add_column("Rank", justify="right")
    table.add_column("Feature")
    table.add_column("Score", justify="right")
    table.add_column("Percentile", justify="right")
    table.add_column("Flags")
    for score in scores:
        flags: List[str] = []
        if score.is_on_critical_path:
            flags.append(f"critical path #{score.critical_path_position}")
        if score.is_bottleneck:
            flags.append("bottleneck")
        table.add_row(
            str(score.workspace_rank or "-"),
            names.get(score.feature_id, score.feature_id),
            f"{score.overall_score:.2f}",
            f"{score.percentile:.0f}" if score.percentile is not None else "-",
            ", ".join(flags),
        )
    console.print(table)


@cli.command()
@click.argument("workspace_id")
@click.option(
    "--min-severity",
    type=click.Choice([s.value for s in InsightSeverity], case_sensitive=False),
    default="low",
    show_default=True,
)
@click.option("--limit", type=int, default=50, show_default=True)
@click.pass_context
def insights(ctx: click.Context, workspace_id: str, min_severity: str, limit: int) -> None:
    """List active insights of a workspace."""
    config: FeatureGraphConfig = ctx.obj["config"]
    with get_sync_session(_session_factory(ctx)) as session:
        rows = InsightGenerator(
            session, SqlFeatureStore(session), config.insights, config.graph
        ).get_workspace_insights(workspace_id, min_severity=min_severity, limit=limit)

    if not rows:
        console.print("[green]No active insights[/green]")
        return

    table = Table(title=f"Insights for {workspace_id}", box=box.ROUNDED)
    table.add_column("Severity")
    table.add_column("Type")
    table.add_column("Title")
    table.add_column("Recommendation")
    for insight in rows:
        color = SEVERITY_COLORS.get(insight.severity.value, "white")
        table.add_row(
            f"[{color}]{insight.severity.value}[/{color}]",
            insight.insight_type.value,
            insight.title,
            insight.recommendation or "",
        )
    console.print(table)


@cli.command()
@click.argument("workspace_id")
@click.option("--feature", "feature_id", default=None, help="Only correlations involving this feature")
@click.option("--min-score", type=float, default=0.0, show_default=True)
@click.option("--detect", is_flag=True, help="Scan for new correlations first")
@click.pass_context
def correlations(
    ctx: click.Context,
    workspace_id: str,
    feature_id: Optional[str],
    min_score: float,
    detect: bool,
) -> None:
    """List correlation candidates of a workspace."""
    config: FeatureGraphConfig = ctx.obj["config"]
    with get_sync_session(_session_factory(ctx)) as session:
        store = SqlFeatureStore(session)
        detector = CorrelationDetector(session, store, config.correlation)
        if detect:
            inserted = detector.detect_workspace_correlations(workspace_id)
            console.print(f"[green]✓[/green] {inserted} new correlations")
        rows = detector.get_correlations(workspace_id, feature_id=feature_id, min_score=min_score)
        names = {f.id: f.name for f in store.list_features(workspace_id)}

    if not rows:
        console.print("[dim]No correlations found[/dim]")
        return

    table = Table(title=f"Correlations in {workspace_id}", box=box.ROUNDED)
    table.add_column("Feature A")
    table.add_column("Feature B")
    table.add_column("Score", justify="right")
    table.add_column("Type")
    table.add_column("Status")
    for row in rows:
        table.add_row(
            names.get(row.feature_a_id, row.feature_a_id),
            names.get(row.feature_b_id, row.feature_b_id),
            f"{row.correlation_score:.2f}",
            row.correlation_type.value if row.correlation_type else "-",
            row.status.value,
        )
    console.print(table)


def main() -> None:
    """Entry point for the featuregraph CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
