#!/usr/bin/env python3
"""
CLI tool for the ingestion pipeline.

Usage:
    # Fetch, normalize and dedupe without writing (dry run)
    python -m scripts.ingest fetch --output articles.json

    # Run one full ingestion cycle
    python -m scripts.ingest cycle

    # Delete expired articles
    python -m scripts.ingest cleanup

    # Enrich one article, or the next batch of unenriched ones
    python -m scripts.ingest enrich --article-id <id>
    python -m scripts.ingest enrich

    # Show source and store stats
    python -m scripts.ingest stats

    # Run scheduler (continuous)
    python -m scripts.ingest serve --interval 5
"""

import argparse
import asyncio
import json
import sys
from contextlib import asynccontextmanager

# Add parent directory to path for imports
sys.path.insert(0, str(__file__).rsplit("/", 2)[0])

from newswire.config import IngestionConfig, get_settings
from newswire.core.exceptions import ArticleNotFoundError, EnrichmentError, PersistenceError
from newswire.core.logging_config import configure_logging
from newswire.jobs.ingestion_cycle import Pipeline, create_adapters
from newswire.models.database import Database
from newswire.services.data_ingestion import SourceAggregator, deduplicate, normalize_batch
from newswire.services.data_ingestion.scheduler import IngestionScheduler


def create_aggregator(config: IngestionConfig) -> SourceAggregator:
    """Create source aggregator from the configured sources."""
    return SourceAggregator(
        config.sources,
        create_adapters(config),
        source_timeout=config.source_timeout_seconds,
    )


@asynccontextmanager
async def open_pipeline(args):
    """Open the database and wire a pipeline for one command."""
    settings = get_settings()
    database = Database(args.database_url or settings.database_url)
    await database.create_tables()
    pipeline = Pipeline(settings, database)
    try:
        yield pipeline
    finally:
        await pipeline.close()
        await database.dispose()


async def cmd_fetch(args):
    """Fetch, normalize and dedupe articles without writing them."""
    config = IngestionConfig.from_settings(get_settings())
    aggregator = create_aggregator(config)

    print("Fetching articles from all sources...")
    drafts, results = await aggregator.fetch_all()
    articles = deduplicate(normalize_batch(
        drafts,
        summary_max_length=config.summary_max_length,
        ttl_days=config.article_ttl_days,
    ))

    print("\n" + "=" * 60)
    print("INGESTION RESULTS")
    print("=" * 60)

    for result in results:
        print(result)

    print("-" * 60)
    print(f"Fetched: {len(drafts)}  Unique: {len(articles)}")

    if args.output:
        output_data = [
            {
                "title": a.title,
                "source_url": a.source_url,
                "source_name": a.source_name,
                "published_at": a.published_at.isoformat() if a.published_at else None,
                "expiry_at": a.expiry_at.isoformat() if a.expiry_at else None,
                "category": a.category,
                "image_url": a.image_url,
                "summary": a.summary,
            }
            for a in articles
        ]

        with open(args.output, "w") as f:
            json.dump(output_data, f, indent=2, ensure_ascii=False)

        print(f"\nArticles saved to: {args.output}")

    if args.verbose:
        print("\n" + "=" * 60)
        print("SAMPLE ARTICLES")
        print("=" * 60)

        for article in articles[:10]:
            print(f"\n[{article.source_name}] {article.title}")
            print(f"  URL: {article.source_url}")
            print(f"  Date: {article.published_at}")
            print(f"  Category: {article.category}")

    return 0


async def cmd_cycle(args):
    """Run one ingestion cycle and store the results."""
    async with open_pipeline(args) as pipeline:
        report = await pipeline.cycle.run_cycle()

        print(report.message)
        for failure in report.errors:
            print(f"  {failure.source}: {failure.error}")

        if args.wait_enrichment and pipeline.dispatcher and report.enrichment_run_id:
            print("Waiting for enrichment to finish...")
            run = await pipeline.dispatcher.wait()
            if run:
                print(f"Enriched {run.enriched}/{run.requested} articles")

    return 0 if report.success else 1


async def cmd_cleanup(args):
    """Delete expired articles."""
    async with open_pipeline(args) as pipeline:
        try:
            deleted = await pipeline.cycle.run_cleanup()
        except PersistenceError as e:
            print(f"Cleanup failed: {e}")
            return 1

    print(f"Deleted {deleted} expired articles")
    return 0


async def cmd_enrich(args):
    """Enrich one article, or the next batch of unenriched articles."""
    async with open_pipeline(args) as pipeline:
        if pipeline.enricher is None or pipeline.dispatcher is None:
            print("Enrichment is not configured (set an API key for the provider)")
            return 1

        if args.article_id:
            try:
                result = await pipeline.enricher.enrich(args.article_id)
            except (ArticleNotFoundError, EnrichmentError, PersistenceError) as e:
                print(f"Enrichment failed: {e}")
                return 1

            print(f"{result.article_id}: {result.status.value}")
            if args.verbose:
                print(json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False))
            return 0

        run = await pipeline.dispatcher.run_pending()

    print(f"Enriched {run.enriched}/{run.requested} articles ({run.degraded} degraded)")
    for failure in run.failures:
        print(f"  {failure}")
    if run.stopped_reason:
        print(f"Stopped early: {run.stopped_reason}")
    return 0


async def cmd_stats(args):
    """Show source configuration and store statistics."""
    async with open_pipeline(args) as pipeline:
        stats = pipeline.cycle.aggregator.get_source_stats()
        article_count = await pipeline.repository.count()
        unenriched = await pipeline.repository.count_unenriched()

    print("\n" + "=" * 50)
    print("SOURCE CONFIGURATION")
    print("=" * 50)
    print(f"Total sources: {stats['total_sources']}")
    print()

    for source in stats["sources"]:
        print(f"  {source['name']}")
        print(f"    Kind: {source['kind']}")
        print(f"    Endpoint: {source['endpoint']}")
        print(f"    Category: {source['category']}")
        print()

    print("=" * 50)
    print("STORE")
    print("=" * 50)
    print(f"Articles: {article_count}")
    print(f"Awaiting enrichment: {unenriched}")

    return 0


async def cmd_serve(args):
    """Run continuous scheduler."""
    async with open_pipeline(args) as pipeline:
        scheduler = IngestionScheduler(
            pipeline.cycle,
            fetch_interval_minutes=args.interval,
        )

        print(f"Starting scheduler (fetch every {args.interval} minutes)")
        print("Press Ctrl+C to stop")

        try:
            await scheduler.start()
            await scheduler.wait()
        finally:
            await scheduler.stop()

    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Newswire - Ingestion CLI"
    )
    parser.add_argument(
        "--database-url",
        help="Override the configured database URL"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: from settings)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Fetch command
    fetch_parser = subparsers.add_parser("fetch", help="Fetch articles without storing them")
    fetch_parser.add_argument(
        "--output", "-o",
        help="Output file for articles (JSON)"
    )
    fetch_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show article previews"
    )

    # Cycle command
    cycle_parser = subparsers.add_parser("cycle", help="Run one ingestion cycle")
    cycle_parser.add_argument(
        "--wait-enrichment", "-w",
        action="store_true",
        help="Wait for the background enrichment run to finish"
    )

    # Cleanup command
    subparsers.add_parser("cleanup", help="Delete expired articles")

    # Enrich command
    enrich_parser = subparsers.add_parser("enrich", help="Enrich stored articles")
    enrich_parser.add_argument(
        "--article-id", "-a",
        help="Enrich this article only"
    )
    enrich_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Print the enrichment"
    )

    # Stats command
    subparsers.add_parser("stats", help="Show source and store statistics")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run continuous scheduler")
    serve_parser.add_argument(
        "--interval", "-i",
        type=int,
        default=get_settings().fetch_interval_minutes,
        help="Fetch interval in minutes (default: from settings)"
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    settings = get_settings()
    configure_logging(args.log_level or settings.log_level, json_output=False)

    commands = {
        "fetch": cmd_fetch,
        "cycle": cmd_cycle,
        "cleanup": cmd_cleanup,
        "enrich": cmd_enrich,
        "stats": cmd_stats,
        "serve": cmd_serve,
    }

    try:
        return asyncio.run(commands[args.command](args))
    except KeyboardInterrupt:
        print("\nShutting down...")
        return 0


if __name__ == "__main__":
    sys.exit(main())
