"""
Command-line interface for the venue catalog deduplication tools
"""
import functools
from contextlib import contextmanager

import click

import database.models  # noqa: F401  registers every table on Base.metadata
from core.config import settings
from core.exceptions import VenueCatalogError
from core.logging import get_logger
from database.base import Base
from database.session import SessionLocal, engine

logger = get_logger(__name__)


def _format_distance(distance) -> str:
    return "n/a" if distance is None else f"{distance:.1f}m"


@contextmanager
def _deduplicator(ctx):
    from venues.deduplicator import VenueDeduplicator

    session_factory = (ctx.obj or {}).get("session_factory", SessionLocal)
    session = session_factory()
    try:
        yield VenueDeduplicator(session=session)
    finally:
        session.close()


def handle_errors(command):
    """Report catalog errors as a message and exit status 1"""

    @functools.wraps(command)
    def wrapper(*args, **kwargs):
        try:
            return command(*args, **kwargs)
        except VenueCatalogError as e:
            logger.warning(f"Command failed: {e.message}", extra={"error_code": e.error_code})
            click.echo(f"Error: {e.message}", err=True)
            raise SystemExit(1)

    return wrapper


@click.group()
@click.version_option(version=settings.app_version)
@click.pass_context
def cli(ctx):
    """venuedup - find, review and merge duplicate venues"""
    ctx.ensure_object(dict)


@cli.command()
def init_db():
    """Initialize database with tables"""
    click.echo("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    click.echo("Database initialized successfully!")


@cli.command()
def env_info():
    """Display environment information"""
    masked = settings.model_dump()
    click.echo(f"{settings.app_name} v{settings.app_version}")
    click.echo(f"Environment: {settings.environment}")
    click.echo(f"Database: {masked['database_url']}")
    click.echo(f"Spatial provider: {settings.spatial_provider}")


@cli.command()
@click.argument("venue_id", type=int)
@click.option("--distance", type=float, default=None, help="Search radius in meters")
@click.option("--min-similarity", type=float, default=None, help="Default minimum name similarity")
@click.option("--limit", type=int, default=None, help="Maximum results")
@click.pass_context
@handle_errors
def find_duplicates(ctx, venue_id: int, distance, min_similarity, limit):
    """List potential duplicates of one venue"""
    with _deduplicator(ctx) as dedup:
        duplicates = dedup.find_duplicates_for_venue(
            venue_id, distance_meters=distance, min_similarity=min_similarity, limit=limit
        )

        if not duplicates:
            click.echo(f"No duplicates found for venue {venue_id}")
            return

        for dup in duplicates:
            click.echo(
                f"{dup.venue.id}\t{dup.venue.name}\tsimilarity {dup.similarity:.2f}\t"
                f"distance {_format_distance(dup.distance_meters)}\tconfidence {dup.confidence:.2f}\t"
                f"events {dup.event_count}"
            )


@cli.command()
@click.argument("city_ids", type=int, nargs=-1, required=True)
@click.option("--distance", type=float, default=None, help="Search radius in meters")
@click.option("--min-similarity", type=float, default=None, help="Default minimum name similarity")
@click.option("--limit", type=int, default=None, help="Maximum pairs")
@click.pass_context
@handle_errors
def pairs(ctx, city_ids, distance, min_similarity, limit):
    """List independent duplicate pairs in one or more cities"""
    with _deduplicator(ctx) as dedup:
        found = dedup.find_duplicate_pairs(
            list(city_ids), distance_meters=distance, min_similarity=min_similarity, limit=limit
        )

        if not found:
            click.echo("No duplicate pairs found")
            return

        for pair in found:
            click.echo(
                f"{pair.venue_a.id} {pair.venue_a.name!r} <-> {pair.venue_b.id} {pair.venue_b.name!r}\t"
                f"similarity {pair.similarity:.2f}\tdistance {_format_distance(pair.distance_meters)}\t"
                f"confidence {pair.confidence:.2f} ({pair.confidence_level.value})\t"
                f"events {pair.affected_events}"
            )


@cli.command()
@click.argument("city_ids", type=int, nargs=-1, required=True)
@click.option("--distance", type=float, default=None, help="Search radius in meters")
@click.option("--min-similarity", type=float, default=None, help="Default minimum name similarity")
@click.option("--limit", type=int, default=None, help="Maximum groups")
@click.pass_context
@handle_errors
def groups(ctx, city_ids, distance, min_similarity, limit):
    """List transitive duplicate groups in one or more cities"""
    with _deduplicator(ctx) as dedup:
        found = dedup.find_duplicates_for_city(
            list(city_ids), distance_meters=distance, min_similarity=min_similarity, limit=limit
        )

        if not found:
            click.echo("No duplicate groups found")
            return

        for index, group in enumerate(found, 1):
            click.echo(
                f"Group {index}: {len(group.venues)} venues, confidence {group.confidence:.2f}, "
                f"avg distance {_format_distance(group.avg_distance)}, events {group.total_events}"
            )
            for venue in group.venues:
                click.echo(f"  {venue.id}\t{venue.name}")


@cli.command()
@click.argument("city_ids", type=int, nargs=-1, required=True)
@click.pass_context
@handle_errors
def metrics(ctx, city_ids):
    """Show duplicate health metrics for one or more cities"""
    with _deduplicator(ctx) as dedup:
        result = dedup.calculate_duplicate_metrics(list(city_ids))

    click.echo(f"Severity: {result.severity.value}")
    click.echo(f"Pairs: {result.pair_count}")
    click.echo(f"Unique venues: {result.unique_venue_count}")
    click.echo(f"Affected events: {result.affected_events}")
    click.echo(
        f"Confidence: {result.high_confidence_count} high, "
        f"{result.medium_confidence_count} medium, {result.low_confidence_count} low"
    )


@cli.command()
@click.argument("venue_ids", type=int, nargs=-1, required=True)
@click.pass_context
@handle_errors
def duplicate_counts(ctx, venue_ids):
    """Strict duplicate counts for a list of venues"""
    with _deduplicator(ctx) as dedup:
        counts = dedup.get_duplicate_counts_batch(list(venue_ids))

    for venue_id, count in counts.items():
        click.echo(f"{venue_id}\t{count}")


@cli.command()
@click.argument("query")
@click.option("--city-id", type=int, default=None, help="Restrict to one city")
@click.option("--limit", type=int, default=20, help="Maximum results")
@click.pass_context
@handle_errors
def search(ctx, query: str, city_id, limit: int):
    """Search venues by name"""
    with _deduplicator(ctx) as dedup:
        results = dedup.search_venues(query, city_id=city_id, limit=limit)

        for result in results:
            click.echo(
                f"{result.venue.id}\t{result.venue.name}\tevents {result.event_count}\t"
                f"duplicates {result.duplicate_count}"
            )


@cli.command()
@click.argument("source_id", type=int)
@click.argument("target_id", type=int)
@click.option("--user-id", type=int, default=None, help="Acting user")
@click.option("--reason", default="manual", help="Merge reason")
@click.option("--yes", is_flag=True, help="Skip confirmation")
@click.pass_context
@handle_errors
def merge(ctx, source_id: int, target_id: int, user_id, reason: str, yes: bool):
    """Merge SOURCE_ID into TARGET_ID and delete the source"""
    if not yes:
        click.confirm(f"Merge venue {source_id} into {target_id}? The source will be deleted", abort=True)

    with _deduplicator(ctx) as dedup:
        result = dedup.merge_venues(source_id, target_id, user_id=user_id, reason=reason)

        click.echo(f"Merged venue {source_id} into {target_id} (audit {result.audit.id})")
        click.echo(
            f"Reassigned: {result.counts.get('events', 0)} events, "
            f"{result.counts.get('public_events', 0)} public events, "
            f"{result.counts.get('groups', 0)} groups, {result.counts.get('images', 0)} images"
        )


@cli.command()
@click.argument("venue_id", type=int)
@click.option("--limit", type=int, default=50, help="Maximum records")
@click.pass_context
@handle_errors
def history(ctx, venue_id: int, limit: int):
    """Merge history of a venue, newest first"""
    with _deduplicator(ctx) as dedup:
        audits = dedup.get_merge_history(venue_id, limit=limit)

        if not audits:
            click.echo(f"No merges recorded for venue {venue_id}")
            return

        for audit in audits:
            name = (audit.source_venue_snapshot or {}).get("name")
            click.echo(
                f"{audit.id}\t{audit.source_venue_id} {name!r} -> {audit.target_venue_id}\t"
                f"{audit.merge_reason}\tevents {audit.events_reassigned}"
            )


@cli.command()
@click.argument("venue_a", type=int)
@click.argument("venue_b", type=int)
@click.option("--user-id", type=int, default=None, help="Acting user")
@click.option("--reason", default=None, help="Why these are not duplicates")
@click.pass_context
@handle_errors
def exclude(ctx, venue_a: int, venue_b: int, user_id, reason):
    """Mark two venues as not duplicates"""
    with _deduplicator(ctx) as dedup:
        exclusion = dedup.exclude_pair(venue_a, venue_b, user_id=user_id, reason=reason)
        click.echo(f"Excluded pair {exclusion.venue_id_1}-{exclusion.venue_id_2}")


@cli.command()
@click.argument("venue_a", type=int)
@click.argument("venue_b", type=int)
@click.pass_context
@handle_errors
def unexclude(ctx, venue_a: int, venue_b: int):
    """Remove a "not duplicates" exclusion"""
    with _deduplicator(ctx) as dedup:
        dedup.remove_exclusion(venue_a, venue_b)
        click.echo(f"Removed exclusion for {min(venue_a, venue_b)}-{max(venue_a, venue_b)}")


def main():
    """Main entry point"""
    cli(prog_name="venuedup")


if __name__ == "__main__":
    main()
