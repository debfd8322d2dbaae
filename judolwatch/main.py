"""Command-line entry point for JudolWatch."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import httpx

from .api import ApiClient, DomainService, ScrapeService, Session
from .cache import QueryCache
from .config import Config, load_config, validate_config
from .constants import ALLOWED_PAGE_SIZES, CrawlEngine, SortColumn, SortOrder
from .errors import JudolWatchError, ValidationError
from .models import ServiceHealth
from .monitoring import BulkHealthCheckRunner, HealthServer, HttpHealthProbe
from .notifications import NotificationLevel, Notifier
from .pipeline import (
    CrawlDispatchCoordinator,
    DomainQueryEngine,
    ScheduleOption,
    ScheduleTranslator,
    TldWhitelist,
    VerificationDraftMachine,
)
from .storage import JsonPreferenceStore
from .utils.domains import normalize_search

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


class JudolWatchApp:
    """Wires configuration, session, services and caches together."""

    def __init__(
        self,
        config: Config,
        notifier: Optional[Notifier] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.notifier = notifier or Notifier(sink=lambda n: print(n))
        self.session = Session(config.api_token or None)
        self.session.on_invalidate(
            lambda: self.notifier.info("Session ended", "Credentials were rejected; log in again")
        )
        self.client = ApiClient(
            config.api_base_url,
            session=self.session,
            timeout_seconds=config.request_timeout,
            transport=transport,
        )
        self.domains = DomainService(self.client)
        self.scrape = ScrapeService(self.client)
        self.preferences = JsonPreferenceStore(config.preferences_path)
        self.cache = QueryCache(
            self.domains.list_domains,
            stale_seconds=config.cache_stale_seconds,
            evict_seconds=config.cache_evict_seconds,
        )

    def query_engine(self) -> DomainQueryEngine:
        return DomainQueryEngine(self.cache, self.preferences)

    def dispatcher(self, tlds: Optional[list[str]] = None) -> CrawlDispatchCoordinator:
        return CrawlDispatchCoordinator(
            self.scrape,
            ScheduleTranslator,
            tlds=TldWhitelist(tlds if tlds is not None else self.config.tld_whitelist),
            engine=CrawlEngine.from_string(self.config.default_engine),
        )

    async def close(self) -> None:
        await self.cache.aclose()
        await self.client.close()


async def cmd_domains(app: JudolWatchApp, args) -> int:
    engine = app.query_engine()
    try:
        with engine.batch():
            if args.page_size is not None:
                engine.set_page_size(args.page_size)
            engine.set_filters(
                search=normalize_search(args.search or ""),
                status=args.status,
                score_range=(args.min_score, args.max_score),
                reasoning=args.reasoning,
            )
            if args.sort and args.sort != engine.sort_by.value:
                engine.set_sort(args.sort)
            if args.desc and engine.order == SortOrder.ASC:
                engine.set_sort(engine.sort_by)
        await engine.refresh()
        if args.page > 1:
            engine.set_page(args.page)
            await engine.wait()
    finally:
        engine.close()

    print(f"Page {engine.page}/{engine.total_pages} ({engine.total} domains)")
    for item in engine.items:
        score = "-" if item.confidence_score is None else item.confidence_score
        reasoning = "yes" if item.reasoning_available else "no"
        print(f"{item.id}\t{item.domain_name}\t{item.status.value}\t{score}\treasoning={reasoning}")
    return 0


async def cmd_verify(app: JudolWatchApp, args) -> int:
    machine = VerificationDraftMachine(app.domains)
    try:
        await machine.open_record(args.domain_id, args.crawl)
        machine.set_status(args.status)
        if args.reasoning is not None:
            machine.set_reasoning(args.reasoning)
        if not machine.dirty:
            app.notifier.info("Nothing to verify", f"{args.domain_id} already has that status")
            return 0
        message = await machine.commit()
    finally:
        machine.close()
    app.notifier.success("Status updated", message or f"{args.domain_id} marked {args.status}")
    return 0


async def cmd_keywords(app: JudolWatchApp, args) -> int:
    coordinator = app.dispatcher()
    if args.action == "save" and not args.keywords and args.replace:
        raise ValidationError("Give at least one keyword with --replace")
    if args.action == "list":
        page = await coordinator.load_keywords(page=args.page, limit=args.limit)
        schedule = ScheduleTranslator.describe(coordinator.schedule) if coordinator.schedule else "not set"
        print(f"Schedule: {schedule} ({page.schedule or '-'}), engine: {coordinator.engine.value}")
        for record in page.items:
            print(f"{record.id}\t{record.keyword}")
        print(f"{page.total} keywords, page {page.page}/{page.total_pages}")
        return 0

    await coordinator.load_keywords()
    if not args.replace:
        existing = {k.casefold() for k in coordinator.keywords.keywords}
        for keyword in args.keywords:
            if keyword.strip().casefold() not in existing:
                coordinator.add_keyword(keyword)
                existing.add(keyword.strip().casefold())
    page = await coordinator.save_configuration(
        keywords=args.keywords if args.replace else None,
        schedule_label=args.schedule,
        engine=args.engine,
    )
    app.notifier.success(
        "Keyword schedule saved",
        f"{page.total} keywords, {ScheduleTranslator.describe(coordinator.schedule)}",
    )
    if coordinator.stale:
        app.notifier.info("Keyword list not refreshed", "Run `keywords list` to reload it")
    return 0


async def cmd_crawl(app: JudolWatchApp, args) -> int:
    coordinator = app.dispatcher(tlds=args.tld or None)
    summary = await coordinator.dispatch_adhoc_crawl(
        keywords=args.keywords,
        engine=args.engine,
        ai_reasoning_enabled=not args.no_ai,
    )
    for result in summary.results:
        print(f"{result.keyword}\tsaved={result.total_saved}\tinference={result.inference_triggered}")
    app.notifier.success(
        "Crawl finished",
        f"{len(summary.keywords)} keywords on {summary.engine.value}: "
        f"{summary.total_saved} domains saved, "
        f"{summary.total_inference_triggered} sent to inference",
    )
    return 0


async def cmd_llm(app: JudolWatchApp, args) -> int:
    results = await app.domains.send_bulk_to_llm(
        args.domains,
        on_progress=lambda i, total, d: logger.info("Sending %s to LLM (%d/%d)", d, i, total),
    )
    failed = [r for r in results if not r.ok]
    for r in failed:
        app.notifier.notify(NotificationLevel.ERROR, "LLM request failed", f"{r.domain}: {r.error}")
    app.notifier.success("LLM requests sent", f"{len(results) - len(failed)}/{len(results)} succeeded")
    return 1 if failed else 0


async def cmd_export(app: JudolWatchApp, args) -> int:
    engine = app.query_engine()
    try:
        engine.set_filters(
            search=normalize_search(args.search or ""),
            status=args.status,
        )
        key = engine.current_key
    finally:
        engine.close()
    count = await app.domains.export_csv(key, Path(args.path))
    app.notifier.success("Export complete", f"{count} rows written to {args.path}")
    return 0


def _print_health(health: ServiceHealth) -> None:
    elapsed = "-" if health.response_time_ms is None else f"{health.response_time_ms}ms"
    line = f"{health.id}\t{health.status.value}\t{elapsed}"
    if health.error:
        line += f"\t{health.error}"
    print(line)


async def cmd_health(app: JudolWatchApp, args) -> int:
    probe = HttpHealthProbe(app.config.service_root_url, timeout_seconds=app.config.request_timeout)
    runner = BulkHealthCheckRunner(
        app.config.services,
        probe,
        concurrency=app.config.health_check_concurrency,
        on_update=_print_health,
    )
    try:
        if args.serve or app.config.health_enabled:
            return await _serve_health(app, runner, args.interval)
        summary = await (runner.run_selected(args.services) if args.services else runner.run_all())
    finally:
        await probe.close()
    print(f"{summary.checked} checked, {summary.ok} ok, {summary.error} error")
    return 0 if summary.error == 0 else 1


async def _serve_health(app: JudolWatchApp, runner: BulkHealthCheckRunner, interval: int) -> int:
    server = HealthServer(
        app.config.health_host,
        app.config.health_port,
        runner,
        enabled=True,
    )
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await server.start()
    try:
        while not stop.is_set():
            await runner.run_all()
            try:
                await asyncio.wait_for(stop.wait(), timeout=max(1, interval))
            except asyncio.TimeoutError:
                pass
    finally:
        await server.stop()
    return 0


COMMANDS = {
    "domains": cmd_domains,
    "verify": cmd_verify,
    "keywords": cmd_keywords,
    "crawl": cmd_crawl,
    "llm": cmd_llm,
    "health": cmd_health,
    "export": cmd_export,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="judolwatch", description="Online gambling domain monitoring console.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("domains", help="List one page of domains.")
    p.add_argument("--search", default="")
    p.add_argument("--status", default="all")
    p.add_argument("--min-score", type=int, default=0)
    p.add_argument("--max-score", type=int, default=100)
    p.add_argument("--reasoning", default="all")
    p.add_argument("--page", type=int, default=1)
    p.add_argument("--page-size", type=int, choices=ALLOWED_PAGE_SIZES)
    p.add_argument("--sort", choices=[c.value for c in SortColumn])
    p.add_argument("--desc", action="store_true", help="Sort descending.")

    p = sub.add_parser("verify", help="Set the verification status of a domain.")
    p.add_argument("domain_id")
    p.add_argument("status", help="judol, non_judol or manual_check")
    p.add_argument("--reasoning")
    p.add_argument("--crawl", type=int, default=0, help="Crawl index (0 = newest).")

    p = sub.add_parser("keywords", help="List or save scheduled crawl keywords.")
    actions = p.add_subparsers(dest="action", required=True)
    kp = actions.add_parser("list", help="Show the saved keywords and schedule.")
    kp.add_argument("--page", type=int, default=1)
    kp.add_argument("--limit", type=int, default=100)
    kp = actions.add_parser("save", help="Save keywords with a schedule and engine.")
    kp.add_argument("keywords", nargs="*")
    kp.add_argument("--schedule", choices=ScheduleOption.choices())
    kp.add_argument("--engine", choices=[e.value for e in CrawlEngine])
    kp.add_argument("--replace", action="store_true", help="Save only the given keywords.")

    p = sub.add_parser("crawl", help="Run an ad-hoc multi-keyword crawl.")
    p.add_argument("keywords", nargs="+")
    p.add_argument("--engine", choices=[e.value for e in CrawlEngine])
    p.add_argument("--no-ai", action="store_true", help="Skip AI reasoning.")
    p.add_argument("--tld", action="append", help="TLD whitelist entry (repeatable).")

    p = sub.add_parser("llm", help="Send domains to the reasoning service.")
    p.add_argument("domains", nargs="+")

    p = sub.add_parser("health", help="Check backend service health.")
    p.add_argument("services", nargs="*")
    p.add_argument("--serve", action="store_true", help="Keep checking and serve /healthz and /metrics.")
    p.add_argument("--interval", type=int, default=60, help="Seconds between checks when serving.")

    p = sub.add_parser("export", help="Export domains to CSV.")
    p.add_argument("path")
    p.add_argument("--search", default="")
    p.add_argument("--status", default="all")

    return parser


async def run(args, config: Config, app: Optional[JudolWatchApp] = None) -> int:
    app = app or JudolWatchApp(config)
    try:
        return await COMMANDS[args.command](app, args)
    except JudolWatchError as e:
        app.notifier.failure(f"{args.command} failed", e)
        return 1
    finally:
        await app.close()


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point."""
    args = build_parser().parse_args(argv)
    config = load_config()

    level = logging.DEBUG if args.verbose else getattr(logging, config.log_level, logging.INFO)
    configure_logging(level)

    validation_errors = validate_config(config)
    if validation_errors:
        for err in validation_errors:
            logger.error(err)
        return 1

    return asyncio.run(run(args, config))


if __name__ == "__main__":
    sys.exit(main())
