import asyncio
import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from event_bus import EventBus
from widget_host import WidgetHost
from widget_poller import ProviderError, WidgetPoller, provider_request


def _definition(interval=None) -> dict:
    data_source = {"provider": "github", "endpoint": "/search/issues", "params": {"q": "is:pr"}, "dataPath": "$.items"}
    if interval is not None:
        data_source["pollIntervalSeconds"] = interval
    return {
        "metadata": {"name": "PRs"},
        "dataSource": data_source,
        "fields": [{"name": "title", "path": "$.title", "type": "string"}],
        "layout": {"type": "list", "fields": {"title": "title"}},
    }


class FakeProvider:
    def __init__(self, response=None, error=None, gated: bool = False) -> None:
        self.response = response if response is not None else {"items": [{"title": "Fix"}]}
        self.error = error
        self.gate = asyncio.Event()
        if not gated:
            self.gate.set()
        self.requests = []
        self.tasks = []

    async def __call__(self, request: dict):
        self.requests.append(request)
        self.tasks.append(asyncio.current_task())
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.response


class TestProviderRequest(unittest.TestCase):
    def test_request_shape(self) -> None:
        request = provider_request(_definition())
        self.assertEqual(
            request,
            {"provider": "github", "endpoint": "/search/issues", "method": "GET", "params": {"q": "is:pr"}},
        )


class TestWidgetPoller(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.host = WidgetHost(EventBus())

    def _mount(self, interval=None, instance_id: str = "prs") -> None:
        self.assertTrue(self.host.mount(instance_id, _definition(interval))["ok"])

    async def test_refresh_loads_records(self) -> None:
        self._mount()
        provider = FakeProvider()
        poller = WidgetPoller(self.host, provider)
        self.assertTrue(await poller.refresh("prs"))
        state = self.host.state("prs")
        self.assertEqual(state.status, "ready")
        self.assertEqual([r["title"] for r in state.visible], ["Fix"])
        self.assertEqual(provider.requests[0]["provider"], "github")

    async def test_tick_coalesces_while_in_flight(self) -> None:
        self._mount()
        provider = FakeProvider(gated=True)
        poller = WidgetPoller(self.host, provider)
        self.assertTrue(poller.tick("prs"))
        await asyncio.sleep(0)
        self.assertFalse(poller.tick("prs"))
        self.assertTrue(poller.in_flight("prs"))
        self.assertEqual(self.host.state("prs").status, "loading")
        provider.gate.set()
        await provider.tasks[0]
        self.assertFalse(poller.in_flight("prs"))
        self.assertEqual(len(provider.requests), 1)
        self.assertEqual(self.host.state("prs").status, "ready")

    async def test_result_after_stop_is_discarded(self) -> None:
        self._mount()
        provider = FakeProvider(gated=True)
        poller = WidgetPoller(self.host, provider)
        poller.tick("prs")
        await asyncio.sleep(0)
        self.assertTrue(poller.stop("prs"))
        provider.gate.set()
        await provider.tasks[0]
        state = self.host.state("prs")
        self.assertEqual(state.records, [])
        self.assertIsNone(state.loaded_at)
        self.assertFalse(poller.stop("prs"))

    async def test_provider_error_sets_error_state(self) -> None:
        self._mount()
        provider = FakeProvider(error=ProviderError("RATE_LIMITED", "slow down", retryable=True))
        poller = WidgetPoller(self.host, provider)
        with self.assertLogs("widgets.host", level="WARNING"):
            await poller.refresh("prs")
        state = self.host.state("prs")
        self.assertEqual(state.status, "error")
        self.assertEqual(state.error, {"code": "RATE_LIMITED", "message": "slow down", "retryable": True})

    async def test_unexpected_error_logged(self) -> None:
        self._mount()
        poller = WidgetPoller(self.host, FakeProvider(error=RuntimeError("socket closed")))
        with self.assertLogs("widgets.poller", level="WARNING") as logs:
            await poller.refresh("prs")
        self.assertIn("provider_fetch_failed", logs.output[0])
        self.assertEqual(self.host.state("prs").error["code"], "PROVIDER_FAILED")

    async def test_zero_interval_fetches_once(self) -> None:
        self._mount(interval=0)
        provider = FakeProvider()
        poller = WidgetPoller(self.host, provider)
        poller.start("prs")
        await asyncio.sleep(0.02)
        self.assertEqual(len(provider.requests), 1)
        self.assertFalse(poller.is_polling("prs"))
        self.assertEqual(self.host.state("prs").status, "ready")

    async def test_interval_repeats_until_closed(self) -> None:
        self._mount(interval=0.01)
        provider = FakeProvider()
        poller = WidgetPoller(self.host, provider)
        self.assertEqual(poller.interval_for("prs"), 0.01)
        poller.start("prs")
        poller.start("prs")
        await asyncio.sleep(0.05)
        self.assertTrue(poller.is_polling("prs"))
        self.assertGreaterEqual(len(provider.requests), 2)
        await poller.aclose()
        self.assertFalse(poller.is_polling("prs"))
        count = len(provider.requests)
        await asyncio.sleep(0.03)
        self.assertEqual(len(provider.requests), count)

    async def test_default_interval_used_when_unset(self) -> None:
        self._mount()
        poller = WidgetPoller(self.host, FakeProvider(), default_interval=30)
        self.assertEqual(poller.interval_for("prs"), 30.0)

    async def test_start_requires_mount(self) -> None:
        poller = WidgetPoller(self.host, FakeProvider())
        with self.assertRaises(KeyError):
            poller.start("missing")

    async def test_host_unmount_ends_polling(self) -> None:
        self._mount(interval=0.01)
        provider = FakeProvider()
        poller = WidgetPoller(self.host, provider)
        poller.start("prs")
        await asyncio.sleep(0.02)
        timer = poller._polls["prs"].timer
        self.assertTrue(self.host.unmount("prs"))
        await asyncio.sleep(0.03)
        self.assertTrue(timer.done())
        self.assertIsNone(timer.exception())
        self.assertFalse(poller.is_polling("prs"))
        self.assertNotIn("prs", poller._polls)
        count = len(provider.requests)
        await asyncio.sleep(0.03)
        self.assertEqual(len(provider.requests), count)

    async def test_remove_unmounts(self) -> None:
        self._mount()
        poller = WidgetPoller(self.host, FakeProvider())
        poller.start("prs")
        self.assertTrue(poller.remove("prs"))
        self.assertFalse(self.host.is_mounted("prs"))
        await poller.aclose()


if __name__ == "__main__":
    unittest.main()
