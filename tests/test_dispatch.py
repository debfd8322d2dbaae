import pytest

from judolwatch.constants import CrawlEngine
from judolwatch.errors import ConfigError, NetworkError, ServerError, ValidationError
from judolwatch.models import KeywordPage, KeywordRecord, KeywordScheduleConfig
from judolwatch.pipeline.dispatch import (
    CrawlDispatchCoordinator,
    KeywordDraftList,
    TldWhitelist,
    aggregate_results,
)
from judolwatch.pipeline.scheduling import ScheduleOption


class _FakeScrapeService:
    def __init__(self):
        self.calls: list[tuple[str, object]] = []
        self.keywords = [KeywordRecord(id="7", keyword="slot gacor")]
        self.schedule = "0 */2 * * *"
        self.engine = "bing"
        self.save_response = {"success": True}
        self.crawl_response = {"results": []}

    async def scrape_multi_keyword(self, keywords, crawl_engine, ai_reasoning, tld_whitelist=None):
        self.calls.append(
            ("scrape", {"keywords": keywords, "engine": crawl_engine, "ai": ai_reasoning, "tld": tld_whitelist})
        )
        return self.crawl_response

    async def get_keywords_schedule(self, page=1, limit=100):
        self.calls.append(("list", (page, limit)))
        return KeywordPage(
            items=tuple(self.keywords),
            total=len(self.keywords),
            schedule=self.schedule,
            crawl_engine=self.engine,
        )

    async def save_keywords_schedule(self, config: KeywordScheduleConfig):
        self.calls.append(("save", config.to_request()))
        return self.save_response

    async def update_keyword(self, keyword_id, keyword, schedule=None):
        self.calls.append(("update", (keyword_id, keyword, schedule)))
        return KeywordRecord(id=keyword_id, keyword=keyword, schedule=schedule)

    async def delete_keyword(self, keyword_id):
        self.calls.append(("delete", keyword_id))
        return {"success": True}


def _called(service, name):
    return [payload for call, payload in service.calls if call == name]


def test_aggregate_counts_malformed_items_as_zero():
    results, saved, inference = aggregate_results(
        [{"total_saved": 3, "inference_triggered": 2}, {"total_saved": "bad"}]
    )
    assert (saved, inference) == (3, 2)
    assert len(results) == 2
    assert results[1].total_saved == 0


def test_aggregate_ignores_bools_and_non_lists():
    _, saved, inference = aggregate_results([{"total_saved": True, "inference_triggered": None}, "x"])
    assert (saved, inference) == (0, 0)
    assert aggregate_results(None) == ((), 0, 0)


@pytest.mark.asyncio
async def test_dispatch_adhoc_crawl_aggregates_and_sends_tlds():
    service = _FakeScrapeService()
    service.crawl_response = {
        "results": [
            {"keyword": "slot", "total_saved": 3, "inference_triggered": 2},
            {"keyword": "togel", "total_saved": "bad"},
        ]
    }
    coordinator = CrawlDispatchCoordinator(service)

    summary = await coordinator.dispatch_adhoc_crawl(
        ["slot", "togel"], "baidu", ai_reasoning_enabled=False
    )

    assert summary.total_saved == 3
    assert summary.total_inference_triggered == 2
    assert summary.engine == CrawlEngine.BAIDU
    payload = _called(service, "scrape")[0]
    assert payload["keywords"] == ["slot", "togel"]
    assert payload["ai"] is False
    assert payload["tld"] == ".ac.id; .go.id; .or.id; .sch.id; .mil.id; .desa.id"


@pytest.mark.asyncio
async def test_dispatch_validates_before_network():
    service = _FakeScrapeService()
    coordinator = CrawlDispatchCoordinator(service)

    with pytest.raises(ValidationError):
        await coordinator.dispatch_adhoc_crawl([], "google")
    with pytest.raises(ValidationError):
        await coordinator.dispatch_adhoc_crawl(["slot", " Slot "], "google")
    with pytest.raises(ValidationError):
        await coordinator.dispatch_adhoc_crawl(["slot"], "yahoo")
    assert service.calls == []


@pytest.mark.asyncio
async def test_save_configuration_posts_cron_and_refetches():
    service = _FakeScrapeService()
    coordinator = CrawlDispatchCoordinator(service)

    page = await coordinator.save_configuration(["slot gacor", "togel"], "2h", CrawlEngine.BING)

    assert _called(service, "save") == [
        {"keywords": ["slot gacor", "togel"], "schedule": "0 */2 * * *", "crawl_engine": "bing"}
    ]
    assert [name for name, _ in service.calls] == ["save", "list"]
    assert coordinator.schedule is ScheduleOption.EVERY_2_HOURS
    assert page.items[0].id == "7"


@pytest.mark.asyncio
async def test_save_configuration_validation_and_failures():
    service = _FakeScrapeService()
    coordinator = CrawlDispatchCoordinator(service)

    with pytest.raises(ValidationError):
        await coordinator.save_configuration([], "1h", "google")
    with pytest.raises(ValidationError):
        await coordinator.save_configuration(["slot"], None, "google")
    with pytest.raises(ConfigError):
        await coordinator.save_configuration(["slot"], "45m", "google")
    assert service.calls == []

    service.save_response = {"success": False, "message": "Scheduler offline"}
    with pytest.raises(ServerError) as excinfo:
        await coordinator.save_configuration(["slot"], "1h", "google")
    assert excinfo.value.detail == "Scheduler offline"


@pytest.mark.asyncio
async def test_load_keywords_restores_selection():
    service = _FakeScrapeService()
    coordinator = CrawlDispatchCoordinator(service)

    await coordinator.load_keywords()
    assert coordinator.schedule is ScheduleOption.EVERY_2_HOURS
    assert coordinator.engine == CrawlEngine.BING
    assert coordinator.keywords.keywords == ["slot gacor"]

    service.schedule = "15 4 * * *"
    await coordinator.load_keywords()
    assert coordinator.schedule is ScheduleOption.EVERY_2_HOURS


@pytest.mark.asyncio
async def test_temporary_keywords_never_reach_backend():
    service = _FakeScrapeService()
    coordinator = CrawlDispatchCoordinator(service, schedule=ScheduleOption.EVERY_HOUR)

    record = coordinator.add_keyword("judi online")
    assert record.id == "temp-1"
    assert not record.is_persisted

    renamed = await coordinator.update_keyword("temp-1", "judi bola")
    assert renamed.keyword == "judi bola"
    second = coordinator.add_keyword("casino")
    await coordinator.delete_keyword(second.id)
    assert service.calls == []

    await coordinator.save_configuration(schedule_label="1h", engine="google")
    sent = _called(service, "save")[0]
    assert sent["keywords"] == ["judi bola"]
    assert all("temp-" not in repr(payload) for _, payload in service.calls)


@pytest.mark.asyncio
async def test_persisted_keyword_update_hits_backend_then_refetches():
    service = _FakeScrapeService()
    coordinator = CrawlDispatchCoordinator(service)
    await coordinator.load_keywords()
    service.calls.clear()

    await coordinator.update_keyword("7", "slot maxwin")

    assert _called(service, "update") == [("7", "slot maxwin", "0 */2 * * *")]
    assert [name for name, _ in service.calls] == ["update", "list"]

    service.calls.clear()
    await coordinator.delete_keyword("7")
    assert [name for name, _ in service.calls] == ["delete", "list"]


def test_keyword_list_rejects_duplicates_and_blanks():
    keywords = KeywordDraftList([KeywordRecord(id="1", keyword="Slot")])
    with pytest.raises(ValidationError):
        keywords.add("slot")
    with pytest.raises(ValidationError):
        keywords.add("   ")
    assert keywords.add("togel").id == "temp-1"
    assert keywords.add("casino").id == "temp-2"
    assert [r.keyword for r in keywords.unsaved] == ["togel", "casino"]


def test_tld_whitelist_parsing():
    tlds = TldWhitelist([])
    added = tlds.add("ac.id, .GO.id;sch.id  .ac.id")

    assert added == [".ac.id", ".go.id", ".sch.id"]
    assert tlds.as_param() == ".ac.id; .go.id; .sch.id"

    tlds.edit(1, "mil.id")
    tlds.edit(0, "   ")
    assert tlds.entries == [".ac.id", ".mil.id", ".sch.id"]
    with pytest.raises(ValidationError):
        tlds.edit(0, ".sch.id")
    assert tlds.remove(2) == ".sch.id"
    with pytest.raises(ValidationError):
        tlds.add("bad/tld")


def test_tld_whitelist_defaults():
    assert TldWhitelist().entries[0] == ".ac.id"
    assert len(TldWhitelist()) == 6


@pytest.mark.asyncio
async def test_empty_whitelist_sends_no_tld_filter():
    service = _FakeScrapeService()
    coordinator = CrawlDispatchCoordinator(service, tlds=TldWhitelist([]))

    await coordinator.dispatch_adhoc_crawl(keywords=["togel"])

    assert len(coordinator.tlds) == 0
    assert _called(service, "scrape")[0]["tld"] is None


@pytest.mark.asyncio
async def test_unrecognized_server_schedule_keeps_selection():
    service = _FakeScrapeService()
    service.schedule = "15 4 * * 1"
    coordinator = CrawlDispatchCoordinator(service, schedule=ScheduleOption.EVERY_2_HOURS)

    await coordinator.load_keywords()

    assert coordinator.schedule == ScheduleOption.EVERY_2_HOURS
    assert coordinator.engine == CrawlEngine.BING


class _ReloadFailsService(_FakeScrapeService):
    async def get_keywords_schedule(self, page=1, limit=100):
        if _called(self, "save") or _called(self, "update") or _called(self, "delete"):
            raise NetworkError("connection reset")
        return await super().get_keywords_schedule(page, limit)


@pytest.mark.asyncio
async def test_save_succeeds_when_reload_fails():
    service = _ReloadFailsService()
    coordinator = CrawlDispatchCoordinator(service)

    page = await coordinator.save_configuration(["slot", "togel"], "2h", "google")

    assert _called(service, "save") == [
        {"keywords": ["slot", "togel"], "schedule": "0 */2 * * *", "crawl_engine": "google"}
    ]
    assert page.total == 2
    assert page.schedule == "0 */2 * * *"
    assert coordinator.stale
    assert coordinator.schedule == ScheduleOption.EVERY_2_HOURS


@pytest.mark.asyncio
async def test_persisted_update_and_delete_survive_reload_failure():
    service = _ReloadFailsService()
    coordinator = CrawlDispatchCoordinator(service)
    await coordinator.load_keywords()

    updated = await coordinator.update_keyword("7", "slot maxwin")
    assert updated.keyword == "slot maxwin"
    assert coordinator.stale

    await coordinator.delete_keyword("7")
    assert _called(service, "delete") == ["7"]


def test_rename_local_rejects_duplicates():
    drafts = KeywordDraftList([KeywordRecord(id="1", keyword="Slot Gacor")])
    record = drafts.add("togel")

    with pytest.raises(ValidationError):
        drafts.rename_local(record.id, "slot gacor")
    assert drafts.rename_local(record.id, "TOGEL").keyword == "TOGEL"


def test_tld_whitelist_index_out_of_range():
    tlds = TldWhitelist(["ac.id"])

    with pytest.raises(ValidationError):
        tlds.edit(3, "go.id")
    with pytest.raises(ValidationError):
        tlds.remove(-2)
    assert tlds.entries == [".ac.id"]
