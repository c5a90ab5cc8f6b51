"""CLI commands for the clip ranking service."""

import json
import logging
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import click
import structlog

from clipfeed import __version__
from clipfeed.config import RankingConfig, RankingConfigError, RankingConfigLoader
from clipfeed.feeds import FeedAssembler, FeedFilter, TimePeriod
from clipfeed.observability import bind_request_context, clear_request_context, configure_logging
from clipfeed.ranker import Excluded, RelevanceScorer, TrendingScorer
from clipfeed.settings import get_settings
from clipfeed.store import SignalStore, ensure_utc
from clipfeed.velocity import EngagementVelocityTracker


logger = structlog.get_logger()


@dataclass
class CliOptions:
    """Options shared by every command."""

    db_path: Path
    ranking_config_path: Path | None
    json_logs: bool
    verbose: bool


def _parse_now(value: str | None) -> datetime:
    """Parse the --now option (ISO-8601, naive values are UTC)."""
    if value is None:
        return datetime.now(UTC)
    try:
        return ensure_utc(datetime.fromisoformat(value))
    except ValueError as e:
        raise click.BadParameter(f"invalid ISO-8601 timestamp: {value}") from e


def _load_ranking_config(options: CliOptions) -> RankingConfig:
    """Load ranking configuration, exit on failure."""
    loader = RankingConfigLoader()
    try:
        return loader.load(options.ranking_config_path)
    except RankingConfigError as e:
        click.echo("Ranking configuration is invalid:", err=True)
        for error in e.errors:
            loc = error["loc"] or "<root>"
            click.echo(f"  - {loc}: {error['msg']}", err=True)
        sys.exit(1)


def _setup(options: CliOptions, command: str) -> Any:
    """Configure logging and return a bound logger."""
    configure_logging(
        level=logging.DEBUG if options.verbose else logging.INFO,
        json_format=options.json_logs,
    )
    return logger.bind(component="cli", command=command)


def _echo_json(payload: dict[str, Any]) -> None:
    click.echo(json.dumps(payload, indent=2, sort_keys=True))


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--db",
    "db_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to the SQLite signal store (default: CLIPFEED_DB_PATH).",
)
@click.option(
    "--config",
    "ranking_config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to ranking.yaml (default: CLIPFEED_RANKING_CONFIG or built-in defaults).",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=None,
    help="Use JSON format for logs (default: CLIPFEED_LOG_JSON).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
@click.pass_context
def cli(
    ctx: click.Context,
    db_path: Path | None,
    ranking_config_path: Path | None,
    json_logs: bool | None,
    verbose: bool,
) -> None:
    """Clip ranking and discovery CLI."""
    settings = get_settings()
    ctx.obj = CliOptions(
        db_path=db_path or settings.db_path,
        ranking_config_path=ranking_config_path or settings.ranking_config_path,
        json_logs=settings.log_json if json_logs is None else json_logs,
        verbose=verbose or settings.log_level_value <= logging.DEBUG,
    )


@cli.command("refresh-velocity")
@click.option(
    "--max-age-hours",
    type=click.IntRange(min=1),
    default=None,
    help="Only refresh clips younger than this (default: from config, 48).",
)
@click.option(
    "--batch-limit",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum clips refreshed in this run (default: from config, 1000).",
)
@click.option("--now", "now_value", default=None, help="Reference time (ISO-8601).")
@click.pass_obj
def refresh_velocity(
    options: CliOptions,
    max_age_hours: int | None,
    batch_limit: int | None,
    now_value: str | None,
) -> None:
    """Snapshot engagement counters of recent clips and purge old samples."""
    log = _setup(options, "refresh-velocity")
    config = _load_ranking_config(options)
    now = _parse_now(now_value)

    with SignalStore(db_path=options.db_path) as store:
        tracker = EngagementVelocityTracker(store, config.velocity)
        summary = tracker.refresh_all_recent(
            max_age_hours=max_age_hours, batch_limit=batch_limit, now=now
        )

    log.info("refresh_velocity_complete", run_id=summary.run_id)
    _echo_json(summary.to_dict())


@cli.command("refresh-trending")
@click.option("--now", "now_value", default=None, help="Reference time (ISO-8601).")
@click.pass_obj
def refresh_trending(options: CliOptions, now_value: str | None) -> None:
    """Recompute the trending score of every live clip."""
    log = _setup(options, "refresh-trending")
    now = _parse_now(now_value)

    with SignalStore(db_path=options.db_path) as store:
        updated = TrendingScorer(store).refresh_all(now)

    log.info("refresh_trending_complete", clips_updated=updated)
    _echo_json({"clips_updated": updated, "now": now.isoformat()})


@cli.command()
@click.argument("feed_filter", type=click.Choice([f.value for f in FeedFilter]))
@click.option("--viewer", "viewer_id", default=None, help="Viewer ID (omit for anonymous).")
@click.option(
    "--period",
    type=click.Choice([p.value for p in TimePeriod]),
    default=TimePeriod.DAY.value,
    show_default=True,
    help="Window for the best feed.",
)
@click.option("--topic", "topic_id", default=None, help="Topic ID for the topic feed.")
@click.option("--city", default=None, help="City for the city feed.")
@click.option("--hour", "current_hour", type=click.IntRange(0, 23), default=None)
@click.option("--device", "device_type", default=None, help="Viewer device type.")
@click.option("--limit", type=click.IntRange(min=1), default=None)
@click.option("--offset", type=click.IntRange(min=0), default=0, show_default=True)
@click.option("--now", "now_value", default=None, help="Reference time (ISO-8601).")
@click.pass_obj
def feed(  # noqa: PLR0913
    options: CliOptions,
    feed_filter: str,
    viewer_id: str | None,
    period: str,
    topic_id: str | None,
    city: str | None,
    current_hour: int | None,
    device_type: str | None,
    limit: int | None,
    offset: int,
    now_value: str | None,
) -> None:
    """Assemble one page of a feed."""
    log = _setup(options, "feed")
    config = _load_ranking_config(options)
    now = _parse_now(now_value)
    request_id = str(uuid.uuid4())
    bind_request_context(request_id, viewer_id)

    try:
        with SignalStore(db_path=options.db_path) as store:
            tracker = EngagementVelocityTracker(store, config.velocity)
            scorer = RelevanceScorer(store, tracker, config)
            assembler = FeedAssembler(store, tracker, scorer, config)
            page = assembler.assemble(
                feed_filter,
                viewer_id,
                period=period,
                topic_id=topic_id,
                city=city,
                current_hour=current_hour,
                device_type=device_type,
                limit=limit,
                offset=offset,
                now=now,
            )
    except ValueError as e:
        log.warning("feed_request_invalid", error=str(e))
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        clear_request_context()

    _echo_json(page.to_dict())


@cli.command()
@click.argument("clip_id")
@click.option("--viewer", "viewer_id", default=None, help="Viewer ID (omit for anonymous).")
@click.option("--hour", "current_hour", type=click.IntRange(0, 23), default=None)
@click.option("--device", "device_type", default=None, help="Viewer device type.")
@click.option("--now", "now_value", default=None, help="Reference time (ISO-8601).")
@click.pass_obj
def score(
    options: CliOptions,
    clip_id: str,
    viewer_id: str | None,
    current_hour: int | None,
    device_type: str | None,
    now_value: str | None,
) -> None:
    """Show the relevance score of a clip for a viewer."""
    _setup(options, "score")
    config = _load_ranking_config(options)
    now = _parse_now(now_value)
    hour = current_hour if current_hour is not None else now.hour

    with SignalStore(db_path=options.db_path) as store:
        tracker = EngagementVelocityTracker(store, config.velocity)
        scorer = RelevanceScorer(store, tracker, config)
        result = scorer.score(clip_id, viewer_id, hour, device_type, now=now)

    output: dict[str, Any] = {
        "clip_id": clip_id,
        "viewer_id": viewer_id,
        "score": result.as_number(),
        "excluded": result.excluded,
    }
    if isinstance(result, Excluded):
        output["reason"] = result.reason
    else:
        output["components"] = result.components.to_dict()
    _echo_json(output)


@cli.command("db-stats")
@click.pass_obj
def db_stats(options: CliOptions) -> None:
    """Display signal store row counts and schema version."""
    _setup(options, "db-stats")

    with SignalStore(db_path=options.db_path) as store:
        _echo_json(
            {
                "schema_version": store.get_schema_version(),
                "tables": store.get_stats(),
            }
        )


if __name__ == "__main__":
    cli()
