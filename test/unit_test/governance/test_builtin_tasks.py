import httpx
import pytest

from pinchgate.gateway.client import GatewayClient
from pinchgate.governance.base import TaskContext
from pinchgate.governance.catalog import build_default_catalog
from pinchgate.governance.content import LinkRef, NullContentStore, SiteHealth
from pinchgate.governance.tasks import (
    BrokenLinksTask,
    CommentSweepTask,
    ContentFreshnessTask,
    DraftNecromancerTask,
    SecurityScanTask,
    SemanticFreshnessTask,
    SeoHealthTask,
    SpacedResurfacingTask,
    TideReportTask,
)
from pinchgate.governance.tasks.broken_links import MAX_REDIRECTS, is_private_host
from pinchgate.governance.tasks.semantic_freshness import parse_verdict
from pinchgate.governance.tasks.seo_health import seo_issues
from pinchgate.resilience.circuit_breaker import CircuitBreaker


def _ctx(content, http=None, **kwargs) -> TaskContext:
    return TaskContext(task_key="test", content=content, http=http or httpx.AsyncClient(), **kwargs)


def test_default_catalog() -> None:
    keys = [t.descriptor.key for t in build_default_catalog()]

    assert keys == [
        "content_freshness",
        "semantic_content_freshness",
        "seo_health",
        "comment_sweep",
        "broken_links",
        "security_scan",
        "draft_necromancer",
        "spaced_resurfacing",
        "tide_report",
    ]
    ai = [t.descriptor.key for t in build_default_catalog() if t.descriptor.ai_assisted]
    assert ai == ["semantic_content_freshness"]


@pytest.mark.asyncio
async def test_every_task_finds_nothing_in_empty_store() -> None:
    for task in build_default_catalog():
        outcome = await task.run(_ctx(NullContentStore()))
        assert outcome.findings == []


class TestContentFreshness:
    @pytest.mark.asyncio
    async def test_reports_posts_older_than_threshold(self, content, make_content_item) -> None:
        content.published = [
            make_content_item("1", days_old=400),
            make_content_item("2", days_old=10),
            make_content_item("3", days_old=200),
        ]

        outcome = await ContentFreshnessTask().run(_ctx(content, stale_after_days=180))

        assert [f.payload["post_id"] for f in outcome.findings] == ["1", "3"]
        assert outcome.findings[0].payload["days_stale"] >= 399
        assert outcome.summary == "2 posts have not been updated in over 180 days."

    @pytest.mark.asyncio
    async def test_respects_item_cap(self, content, make_content_item) -> None:
        content.published = [make_content_item(str(i), days_old=300 + i) for i in range(10)]

        outcome = await ContentFreshnessTask().run(_ctx(content, max_items=3))

        assert len(outcome.findings) == 3


class TestCommentSweep:
    @pytest.mark.asyncio
    async def test_counts_reported(self, content) -> None:
        content.pending_comments = 4
        content.spam_comments = 12

        outcome = await CommentSweepTask().run(_ctx(content))

        [finding] = outcome.findings
        assert finding.payload == {"pending": 4, "spam": 12}
        assert outcome.summary == "4 comments awaiting moderation, 12 in spam."


class TestDraftNecromancer:
    @pytest.mark.asyncio
    async def test_only_drafts_untouched_for_30_days(self, content, make_content_item) -> None:
        content.drafts = [make_content_item("d1", days_old=45), make_content_item("d2", days_old=3)]

        outcome = await DraftNecromancerTask().run(_ctx(content))

        assert [f.payload["post_id"] for f in outcome.findings] == ["d1"]


class TestBrokenLinks:
    @pytest.mark.parametrize(
        "url,private",
        [
            ("http://localhost/x", True),
            ("http://127.0.0.1/x", True),
            ("http://10.0.0.5/x", True),
            ("http://169.254.1.1/x", True),
            ("http://[::1]/x", True),
            ("http://mock-site/x", False),
            ("https://93.184.216.34/", False),
        ],
    )
    def test_private_hosts(self, url: str, private: bool) -> None:
        assert is_private_host(url) is private

    @pytest.mark.asyncio
    async def test_reports_4xx_5xx_and_records_transport_errors(self, content, site_transport) -> None:
        transport = site_transport(
            {
                "http://mock-site/gone": 404,
                "http://mock-site/broken": 500,
                "http://mock-site/timeout": httpx.ConnectTimeout("slow"),
            }
        )
        content.links = [
            LinkRef(post_id="1", url="http://mock-site/ok"),
            LinkRef(post_id="1", url="http://mock-site/gone"),
            LinkRef(post_id="2", url="http://mock-site/timeout"),
            LinkRef(post_id="2", url="http://mock-site/broken"),
            LinkRef(post_id="3", url="http://127.0.0.1/admin"),
        ]
        ctx = _ctx(content, http=httpx.AsyncClient(transport=httpx.MockTransport(transport)))

        outcome = await BrokenLinksTask().run(ctx)

        assert [(f.payload["url"], f.payload["status"]) for f in outcome.findings] == [
            ("http://mock-site/gone", 404),
            ("http://mock-site/broken", 500),
        ]
        assert [f["unit"] for f in ctx.failures] == ["http://mock-site/timeout"]
        assert all(r.method == "HEAD" for r in transport.requests)
        assert "127.0.0.1" not in {r.url.host for r in transport.requests}
        assert outcome.summary == "2 broken links found across 4 checked."

    @pytest.mark.asyncio
    async def test_stops_at_item_cap(self, content, site_transport) -> None:
        transport = site_transport({})
        content.links = [LinkRef(post_id=str(i), url=f"http://mock-site/{i}") for i in range(10)]
        ctx = _ctx(content, http=httpx.AsyncClient(transport=httpx.MockTransport(transport)), max_items=4)

        await BrokenLinksTask().run(ctx)

        assert len(transport.requests) == 4

    @pytest.mark.asyncio
    async def test_stops_when_time_budget_spent(self, content, site_transport, monotonic) -> None:
        transport = site_transport({})
        content.links = [LinkRef(post_id=str(i), url=f"http://mock-site/{i}") for i in range(10)]
        ctx = _ctx(
            content,
            http=httpx.AsyncClient(transport=httpx.MockTransport(transport)),
            deadline=monotonic(),
            monotonic=monotonic,
        )

        outcome = await BrokenLinksTask().run(ctx)

        assert transport.requests == []
        assert outcome.findings == []

    @pytest.mark.asyncio
    async def test_redirect_to_private_address_is_not_followed(self, content, site_transport) -> None:
        transport = site_transport({"http://mock-public/page": (302, "http://169.254.169.254/latest/meta-data")})
        content.links = [LinkRef(post_id="1", url="http://mock-public/page")]
        ctx = _ctx(content, http=httpx.AsyncClient(transport=httpx.MockTransport(transport)))

        outcome = await BrokenLinksTask().run(ctx)

        assert [str(r.url) for r in transport.requests] == ["http://mock-public/page"]
        assert "169.254.169.254" not in {r.url.host for r in transport.requests}
        assert outcome.findings == []
        assert ctx.failures == [{"unit": "http://mock-public/page", "error": "redirects to a private address"}]

    @pytest.mark.asyncio
    async def test_public_redirect_followed_to_final_status(self, content, site_transport) -> None:
        transport = site_transport(
            {
                "http://mock-site/old": (301, "/new"),
                "http://mock-site/new": 404,
            }
        )
        content.links = [LinkRef(post_id="1", url="http://mock-site/old")]
        ctx = _ctx(content, http=httpx.AsyncClient(transport=httpx.MockTransport(transport)))

        outcome = await BrokenLinksTask().run(ctx)

        assert [str(r.url) for r in transport.requests] == ["http://mock-site/old", "http://mock-site/new"]
        assert all(r.method == "HEAD" for r in transport.requests)
        [finding] = outcome.findings
        assert finding.payload == {"post_id": "1", "url": "http://mock-site/old", "status": 404}

    @pytest.mark.asyncio
    async def test_redirect_chain_longer_than_limit_is_a_failure(self, content, site_transport) -> None:
        hops = {f"http://mock-site/hop{i}": (302, f"http://mock-site/hop{i + 1}") for i in range(10)}
        transport = site_transport(hops)
        content.links = [LinkRef(post_id="1", url="http://mock-site/hop0")]
        ctx = _ctx(content, http=httpx.AsyncClient(transport=httpx.MockTransport(transport)))

        outcome = await BrokenLinksTask().run(ctx)

        assert len(transport.requests) == MAX_REDIRECTS + 1
        assert outcome.findings == []
        [failure] = ctx.failures
        assert failure["error"].startswith("TooManyRedirects")


class TestSeoHealth:
    def test_well_formed_item_has_no_issues(self, make_content_item) -> None:
        body = "<p>" + "word " * 120 + '<img src="a.png" alt="A chart"></p>'
        item = make_content_item("1", days_old=1, title="A perfectly reasonable title", body=body, has_featured_image=True)

        assert seo_issues(item) == []

    def test_unknown_body_and_featured_image_are_not_checked(self, make_content_item) -> None:
        item = make_content_item("1", days_old=1, title="A perfectly reasonable title")

        assert seo_issues(item) == []

    def test_every_issue_reported(self, make_content_item) -> None:
        item = make_content_item(
            "1", days_old=1, title="Short", body='<p>Too thin.</p><img src="a.png">', has_featured_image=False
        )

        assert seo_issues(item) == [
            "Title is shorter than 20 characters.",
            "Content has fewer than 100 words.",
            "Image found without alt attribute.",
            "No featured image set.",
        ]

    def test_long_title(self, make_content_item) -> None:
        item = make_content_item("1", days_old=1, title="x" * 61)

        assert seo_issues(item) == ["Title exceeds 60 characters (may truncate in SERPs)."]

    @pytest.mark.asyncio
    async def test_only_items_with_issues_become_findings(self, content, make_content_item) -> None:
        content.published = [
            make_content_item("1", days_old=5, title="A perfectly reasonable title"),
            make_content_item("2", days_old=3, title="Tiny"),
        ]

        outcome = await SeoHealthTask().run(_ctx(content))

        [finding] = outcome.findings
        assert finding.task_key == "seo_health"
        assert finding.payload == {
            "post_id": "2",
            "title": "Tiny",
            "url": "http://mock-site/2",
            "issues": ["Title is shorter than 20 characters."],
        }
        assert outcome.summary == "1 posts/pages have SEO issues."


class TestSecurityScan:
    @pytest.mark.asyncio
    async def test_flags_only_the_problems_found(self, content) -> None:
        content.health = SiteHealth(core_update_available=True, plugin_updates=["akismet", "jetpack"], debug_mode=True)

        outcome = await SecurityScanTask().run(_ctx(content))

        [finding] = outcome.findings
        assert finding.payload == {
            "core_update_available": True,
            "plugin_updates": ["akismet", "jetpack"],
            "debug_mode": True,
        }
        assert outcome.summary == "Core update available; 2 plugin updates; Debug mode is enabled."

    @pytest.mark.asyncio
    async def test_theme_updates_and_file_editing(self, content) -> None:
        content.health = SiteHealth(theme_updates=["twentytwentyfour"], file_editing_enabled=True)

        outcome = await SecurityScanTask().run(_ctx(content))

        assert outcome.summary == "1 theme updates; File editing is not disabled."

    @pytest.mark.asyncio
    async def test_healthy_site_has_no_findings(self, content) -> None:
        outcome = await SecurityScanTask().run(_ctx(content))

        assert outcome.findings == []


class TestSpacedResurfacing:
    @pytest.mark.asyncio
    async def test_only_posts_untouched_for_30_days_oldest_first(self, content, make_content_item) -> None:
        content.published = [
            make_content_item("1", days_old=45),
            make_content_item("2", days_old=3),
            make_content_item("3", days_old=400),
        ]

        outcome = await SpacedResurfacingTask().run(_ctx(content))

        assert [f.payload["post_id"] for f in outcome.findings] == ["3", "1"]
        assert set(outcome.findings[0].payload) == {"post_id", "title", "url", "modified"}
        assert outcome.summary == "2 posts have not been updated in over 30 days."

    @pytest.mark.asyncio
    async def test_respects_item_cap(self, content, make_content_item) -> None:
        content.published = [make_content_item(str(i), days_old=40 + i) for i in range(10)]

        outcome = await SpacedResurfacingTask().run(_ctx(content, max_items=2))

        assert len(outcome.findings) == 2


class TestSemanticFreshness:
    def test_parse_verdict(self) -> None:
        assert parse_verdict('{"stale": true, "reason": "2019 prices"}') == {"stale": True, "reason": "2019 prices"}
        assert parse_verdict('Sure! {"stale": false}') == {"stale": False, "reason": ""}
        assert parse_verdict("no json here") is None
        assert parse_verdict('{"stale": "maybe"}') is None

    @pytest.fixture
    def gateway(self, circuit_repo, clock):
        def _make(handler) -> GatewayClient:
            http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            breaker = CircuitBreaker("ai_gateway", circuit_repo, clock=clock)
            return GatewayClient("http://mock-gateway", breaker=breaker, client=http)

        return _make

    @pytest.mark.asyncio
    async def test_stale_verdicts_become_findings(self, content, make_content_item, gateway) -> None:
        content.published = [
            make_content_item("1", days_old=900, title="Rates 2019"),
            make_content_item("2", days_old=800, title="Evergreen"),
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            stale = "Rates 2019" in request.content.decode()
            return httpx.Response(200, json={"response": f'{{"stale": {str(stale).lower()}, "reason": "old rates"}}'})

        ctx = _ctx(content, gateway=gateway(handler))
        outcome = await SemanticFreshnessTask().run(ctx)

        [finding] = outcome.findings
        assert finding.payload["post_id"] == "1"
        assert finding.payload["reason"] == "old rates"

    @pytest.mark.asyncio
    async def test_open_circuit_stops_quietly(self, content, make_content_item, gateway) -> None:
        content.published = [make_content_item(str(i), days_old=900) for i in range(6)]
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503)

        ctx = _ctx(content, gateway=gateway(handler))
        outcome = await SemanticFreshnessTask().run(ctx)

        # three failures open the circuit; the rest of the sample is not sent
        assert len(calls) == 3
        assert len(ctx.failures) == 3
        assert outcome.findings == []

    @pytest.mark.asyncio
    async def test_sample_size_caps_gateway_calls(self, content, make_content_item, gateway) -> None:
        content.published = [make_content_item(str(i), days_old=900) for i in range(6)]
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"response": "not json"})

        ctx = _ctx(content, gateway=gateway(handler), ai_sample_size=2)
        await SemanticFreshnessTask().run(ctx)

        assert len(calls) == 2
        assert [f["error"] for f in ctx.failures] == ["unparseable gateway reply"] * 2


class TestTideReport:
    @pytest.mark.asyncio
    async def test_bundles_sections_into_one_outcome(self, content, make_content_item) -> None:
        content.published = [make_content_item("1", days_old=400)]
        content.pending_comments = 2
        content.drafts = [make_content_item("d1", days_old=60)]

        outcome = await TideReportTask().run(_ctx(content))

        assert [f.payload["section"] for f in outcome.findings] == [
            "content_freshness",
            "seo_health",
            "comment_sweep",
            "draft_necromancer",
            "spaced_resurfacing",
        ]
        assert outcome.summary == (
            "Tide Report: 1 stale posts; 1 SEO issues; 2 pending, 0 spam; "
            "1 drafts worth resurrecting; 1 notes to resurface."
        )

    @pytest.mark.asyncio
    async def test_seo_section_lists_issues(self, content, make_content_item) -> None:
        content.published = [
            make_content_item("1", days_old=2, title="A perfectly reasonable title"),
            make_content_item("2", days_old=2, title="Tiny", has_featured_image=False),
        ]

        outcome = await TideReportTask().run(_ctx(content))

        [section] = outcome.findings
        assert section.payload["section"] == "seo_health"
        assert [i["post_id"] for i in section.payload["items"]] == ["2"]
        assert outcome.summary == "Tide Report: 1 SEO issues."

    @pytest.mark.asyncio
    async def test_quiet_site_has_no_findings(self, content) -> None:
        outcome = await TideReportTask().run(_ctx(content))

        assert outcome.findings == []
