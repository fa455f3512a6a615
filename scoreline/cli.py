"""CLI commands for Scoreline."""
import asyncio
import json
import threading

import click


@click.group()
def cli():
    """Scoreline prediction game CLI."""
    pass


def _prepare():
    """Logging, tables and persisted provider health."""
    from scoreline.config import setup_logging
    from scoreline.services.integration_health import get_health_monitor
    from scoreline.storage.database import db

    setup_logging()
    db.create_tables()
    get_health_monitor().load()


@cli.command()
def run():
    """Run the service (scheduler)."""
    from scoreline.main import main

    click.echo("Starting Scoreline service...")
    main()


@cli.command()
def init_db():
    """Initialize database tables."""
    from scoreline.config import setup_logging
    from scoreline.storage.database import db

    setup_logging()
    db.create_tables()
    click.echo(f"Database initialized at {db.db_path}")


@cli.command()
@click.argument("match_id")
def process_match(match_id: str):
    """Score a finished match and rebuild the leagues it touched."""
    from scoreline.exceptions import PreconditionError
    from scoreline.services.results_pipeline import get_results_pipeline

    _prepare()
    pipeline = get_results_pipeline()
    try:
        standings = pipeline.process_finished_match(match_id)
    except PreconditionError as e:
        raise click.ClickException(str(e))

    events = pipeline.outbox.drain()
    click.echo(f"Match {match_id} processed: {len(standings)} league(s) recomputed, {len(events)} events")
    for league_id, entries in standings.items():
        click.echo(f"  {league_id}: {len(entries)} participants")


@cli.command()
@click.option("--league", "league_id", default=None, help="Recompute a single league")
def recompute(league_id: str):
    """Rebuild standings from bet results (all leagues by default)."""
    from scoreline.services.results_pipeline import get_results_pipeline

    _prepare()
    pipeline = get_results_pipeline()

    if league_id:
        entries = pipeline.recompute_standings(league_id)
        click.echo(f"League {league_id}: {len(entries)} participants")
        return

    cancel = threading.Event()
    try:
        rebuilt = pipeline.recompute_all(cancel)
    except KeyboardInterrupt:
        cancel.set()
        raise
    click.echo(f"Recomputed {len(rebuilt)} leagues")


@cli.command()
@click.argument("league_id")
@click.option("--output", default="table", help="Output format: table or json")
def standings(league_id: str, output: str):
    """Show a league's ranked standings."""
    from scoreline.services.results_pipeline import get_results_pipeline

    _prepare()
    table = get_results_pipeline().standings_table(league_id)

    if output == "json":
        rows = [
            {
                "rank": row.rank,
                "participant_id": row.entry.participant_id,
                "points": row.entry.total_points,
                "exact": row.entry.exact_matches,
                "correct": row.entry.correct_outcomes,
                "bets": row.entry.bets_placed,
                "current_streak": row.entry.current_streak,
                "best_streak": row.entry.best_streak,
            }
            for row in table
        ]
        click.echo(json.dumps(rows, indent=2))
        return

    click.echo(f"\nStandings: {league_id}")
    click.echo("-" * 60)
    click.echo(f"{'#':>3}  {'Participant':<20} {'Pts':>4} {'Exact':>5} {'Bets':>4} {'Streak':>6} {'Best':>4}")
    for row in table:
        e = row.entry
        click.echo(
            f"{row.rank:>3}  {e.participant_id:<20} {e.total_points:>4} {e.exact_matches:>5} "
            f"{e.bets_placed:>4} {e.current_streak:>6} {e.best_streak:>4}"
        )


@cli.command()
@click.option("--probe", is_flag=True, help="Probe providers before reporting")
def health(probe: bool):
    """Show signal provider health."""
    from scoreline.fetchers import SignalCollector
    from scoreline.services.integration_health import get_health_monitor

    _prepare()
    monitor = get_health_monitor()

    if probe:
        async def _probe():
            collector = SignalCollector(monitor=monitor)
            try:
                await collector.probe_all()
            finally:
                await collector.close()

        asyncio.run(_probe())

    click.echo("Provider Health")
    click.echo("=" * 60)
    for status in monitor.all_statuses():
        last_ok = status.last_successful_sync.strftime("%Y-%m-%d %H:%M") if status.last_successful_sync else "never"
        click.echo(
            f"{status.name:<10} {status.health.value:<9} failures={status.consecutive_failures:<3} "
            f"last_ok={last_ok}"
        )
        if status.is_manually_disabled:
            click.echo(f"           disabled by {status.disabled_by}: {status.disabled_reason}")
        elif status.last_error:
            click.echo(f"           last error: {status.last_error}")


@cli.command()
@click.argument("provider")
@click.option("--reason", required=True, help="Why the provider is being disabled")
@click.option("--by", "disabled_by", default="admin", help="Who is disabling it")
def disable_provider(provider: str, reason: str, disabled_by: str):
    """Manually disable a signal provider."""
    from scoreline.services.integration_health import get_health_monitor

    _prepare()
    status = get_health_monitor().disable(provider, reason, disabled_by)
    click.echo(f"{status.name} is now {status.health.value}")


@cli.command()
@click.argument("provider")
def enable_provider(provider: str):
    """Re-enable a manually disabled signal provider."""
    from scoreline.services.integration_health import get_health_monitor

    _prepare()
    status = get_health_monitor().enable(provider)
    click.echo(f"{status.name} is now {status.health.value}")


@cli.command()
def rebuild_form():
    """Recompute every cached team form from stored matches."""
    from scoreline.services.form_cache import rebuild_team_forms

    _prepare()
    count = rebuild_team_forms()
    click.echo(f"Rebuilt {count} team forms")


@cli.command()
@click.argument("match_id")
@click.option("--preset", default="balanced", help="Bot personality preset")
@click.option("--participant", "participant_id", required=True, help="Bot participant id")
@click.option("--league", "league_id", required=True, help="League to place the prediction in")
@click.option("--dry-run", is_flag=True, help="Show the prediction without storing it")
def predict(match_id: str, preset: str, participant_id: str, league_id: str, dry_run: bool):
    """Predict an upcoming match for a bot."""
    from scoreline.config.settings import get_bot_profile
    from scoreline.models.prediction_engine import PredictionEngine
    from scoreline.services.bot_predictions import BotPredictionService
    from scoreline.storage import repository
    from scoreline.storage.database import db

    _prepare()

    try:
        profile = get_bot_profile(preset, participant_id)
    except KeyError as e:
        raise click.ClickException(str(e))

    with db.session() as session:
        match = repository.get_match(session, match_id)
    if match is None:
        raise click.ClickException(f"Match {match_id} not found")

    async def _predict():
        engine = PredictionEngine()
        try:
            if dry_run:
                return await engine.predict(profile, match, league_id=league_id)
            return await BotPredictionService(engine=engine).place(profile, match, league_id)
        finally:
            await engine.collector.close()

    prediction = asyncio.run(_predict())
    diagnostics = prediction.diagnostics

    result = {
        "match": f"{match.home_team_id} vs {match.away_team_id}",
        "prediction": f"{prediction.home_score}-{prediction.away_score}",
        "data_quality": round(diagnostics.data_quality, 3),
        "signals_used": list(diagnostics.signals_used),
        "effective_weights": {k: round(v, 3) for k, v in diagnostics.effective_weights.items()},
        "fallback": diagnostics.fallback_reason,
        "probabilities": {k: round(v, 3) for k, v in diagnostics.outcome_probabilities.items()},
        "stored": not dry_run,
    }
    click.echo(json.dumps(result, indent=2))


@cli.command()
@click.option("--hours", type=int, default=None, help="Look-ahead window in hours")
def place_bots(hours: int):
    """Place bets for every rostered bot on upcoming fixtures."""
    from scoreline.config.settings import load_bot_roster, settings
    from scoreline.models.prediction_engine import PredictionEngine
    from scoreline.services.bot_predictions import BotPredictionService

    _prepare()
    roster = load_bot_roster()

    async def _place():
        engine = PredictionEngine()
        try:
            service = BotPredictionService(engine=engine)
            return await service.place_upcoming(roster, hours_ahead=hours or settings.bot_hours_ahead)
        finally:
            await engine.collector.close()

    placed = asyncio.run(_place())
    click.echo(f"Placed {len(placed)} bot predictions for {len(roster)} bots")


if __name__ == "__main__":
    cli()
