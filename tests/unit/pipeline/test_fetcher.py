"""Tests for the page fetcher stage."""

import asyncio
import math
from unittest.mock import AsyncMock, MagicMock

import pytest
from anyio import create_memory_object_stream

from bspl_harvester.pipeline import PageFetcher
from tests.fixtures.fakes import FakeSite, collect, make_challenge


def solved(identifiers):
    return [
        make_challenge(identifier, number=n).submit(f"job-{n}").solve("160665")
        for n, identifier in enumerate(identifiers, start=1)
    ]


async def run_fetcher(fetcher, items):
    in_send, in_receive = create_memory_object_stream(math.inf)
    out_send, out_receive = create_memory_object_stream(math.inf)
    for item in items:
        in_send.send_nowait(item)
    in_send.close()

    await fetcher.run(in_receive, out_send)
    return await collect(out_receive)


class TestPageFetcher:
    """Tests for PageFetcher.run()."""

    @pytest.mark.asyncio
    async def test_results_pair_identifier_with_its_page(self, fake_site):
        results = await run_fetcher(PageFetcher(fake_site), solved(["10", "20", "30"]))

        assert [(r.identifier, r.content) for r in results] == [
            ("10", "<html>10:160665</html>"),
            ("20", "<html>20:160665</html>"),
            ("30", "<html>30:160665</html>"),
        ]
        assert all(r.ok for r in results)

    @pytest.mark.asyncio
    async def test_failed_page_is_dropped_by_default(self):
        site = FakeSite(failing_pages={"20"})
        fetcher = PageFetcher(site)

        results = await run_fetcher(fetcher, solved(["10", "20", "30"]))

        assert [r.identifier for r in results] == ["10", "30"]
        assert fetcher.stats.as_dict() == {"received": 3, "emitted": 2, "dropped": 1}

    @pytest.mark.asyncio
    async def test_failed_page_is_reported_when_asked(self):
        site = FakeSite(failing_pages={"20"})

        results = await run_fetcher(PageFetcher(site, emit_failures=True), solved(["10", "20"]))

        assert [r.ok for r in results] == [True, False]
        assert results[1].identifier == "20"
        assert "status=500" in results[1].error

    @pytest.mark.asyncio
    async def test_stops_when_result_receiver_is_closed(self, fake_site):
        in_send, in_receive = create_memory_object_stream(math.inf)
        out_send, out_receive = create_memory_object_stream(math.inf)
        for item in solved(["10", "20", "30"]):
            in_send.send_nowait(item)
        await out_receive.aclose()

        await PageFetcher(fake_site).run(in_receive, out_send)

        assert [c.identifier for c in fake_site.page_calls] == ["10"]

    @pytest.mark.asyncio
    async def test_cancellation_is_not_swallowed(self):
        site = MagicMock()
        site.get_page = AsyncMock(side_effect=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await run_fetcher(PageFetcher(site), solved(["10", "20"]))

        site.get_page.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_page_request_gets_the_solved_challenge(self):
        site = MagicMock()
        site.get_page = AsyncMock(return_value="<html>ok</html>")
        challenge = solved(["10"])[0]

        results = await run_fetcher(PageFetcher(site), [challenge])

        site.get_page.assert_awaited_once_with(challenge)
        assert results[0].content == "<html>ok</html>"
