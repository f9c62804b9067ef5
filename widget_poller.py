"""Asyncio polling of provider data for mounted widgets.

Each instance gets one timer task. A tick starts a fetch unless the previous
fetch is still in flight, in which case the tick is skipped. Stopping an
instance cancels its timer and bumps its generation, so a fetch that completes
afterwards is discarded. There is no retry here: a failed fetch puts the
widget in its error state until the next successful tick.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict

from widget_host import WidgetHost

logger = logging.getLogger("widgets.poller")

Fetch = Callable[[dict], Awaitable[Any]]


@dataclass
class ProviderError(Exception):
    code: str
    message: str
    retryable: bool = False

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.code}: {self.message}"

    def as_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "retryable": self.retryable}


def provider_request(definition: dict) -> dict:
    """Build the request handed to the provider collaborator."""
    data_source = definition.get("dataSource") or {}
    request = {
        "provider": data_source.get("provider"),
        "endpoint": data_source.get("endpoint"),
        "method": data_source.get("method") or "GET",
    }
    for key in ("params", "body"):
        if data_source.get(key) is not None:
            request[key] = data_source[key]
    return request


class _PollState:
    def __init__(self) -> None:
        self.generation = 0
        self.timer: asyncio.Task | None = None
        self.fetch: asyncio.Task | None = None

    @property
    def in_flight(self) -> bool:
        return self.fetch is not None and not self.fetch.done()


class WidgetPoller:
    def __init__(self, host: WidgetHost, fetch: Fetch, default_interval: float = 0) -> None:
        self._host = host
        self._fetch = fetch
        self._default_interval = default_interval
        self._polls: Dict[str, _PollState] = {}

    def interval_for(self, instance_id: str) -> float:
        data_source = self._host.definition(instance_id).get("dataSource") or {}
        interval = data_source.get("pollIntervalSeconds")
        if interval is None:
            interval = self._default_interval
        return float(interval or 0)

    def is_polling(self, instance_id: str) -> bool:
        poll = self._polls.get(instance_id)
        return poll is not None and poll.timer is not None and not poll.timer.done()

    def in_flight(self, instance_id: str) -> bool:
        poll = self._polls.get(instance_id)
        return poll is not None and poll.in_flight

    def start(self, instance_id: str) -> None:
        if not self._host.is_mounted(instance_id):
            raise KeyError(f"widget not mounted: {instance_id}")
        if self.is_polling(instance_id):
            return
        poll = self._polls.setdefault(instance_id, _PollState())
        poll.timer = asyncio.get_running_loop().create_task(self._run(instance_id, poll, poll.generation))
        logger.info("poll_started id=%s interval=%s", instance_id, self.interval_for(instance_id))

    async def _run(self, instance_id: str, poll: _PollState, generation: int) -> None:
        interval = None
        while poll.generation == generation:
            if not self._host.is_mounted(instance_id):
                self._release(instance_id, poll)
                return
            if interval is None:
                interval = self.interval_for(instance_id)
            self.tick(instance_id)
            if interval <= 0:
                return
            await asyncio.sleep(interval)

    def tick(self, instance_id: str) -> bool:
        """Start a fetch for ``instance_id``. Returns False when coalesced into a running one."""
        request = provider_request(self._host.definition(instance_id))
        poll = self._polls.setdefault(instance_id, _PollState())
        if poll.in_flight:
            logger.debug("poll_tick_skipped id=%s", instance_id)
            return False
        self._host.begin_load(instance_id)
        poll.fetch = asyncio.get_running_loop().create_task(self._complete(instance_id, poll, poll.generation, request))
        return True

    async def refresh(self, instance_id: str) -> bool:
        started = self.tick(instance_id)
        fetch = self._polls[instance_id].fetch
        if fetch is not None:
            await asyncio.shield(fetch)
        return started

    async def _complete(self, instance_id: str, poll: _PollState, generation: int, request: dict) -> None:
        try:
            response = await self._fetch(request)
        except asyncio.CancelledError:
            raise
        except ProviderError as exc:
            if self._current(instance_id, poll, generation):
                self._host.fail(instance_id, exc.as_dict())
            return
        except Exception as exc:
            logger.warning("provider_fetch_failed id=%s provider=%s error=%s", instance_id, request.get("provider"), exc)
            if self._current(instance_id, poll, generation):
                self._host.fail(instance_id, {"code": "PROVIDER_FAILED", "message": str(exc), "retryable": False})
            return
        if not self._current(instance_id, poll, generation):
            logger.debug("poll_result_discarded id=%s generation=%s", instance_id, generation)
            return
        self._host.load_response(instance_id, response)

    def _current(self, instance_id: str, poll: _PollState, generation: int) -> bool:
        return self._polls.get(instance_id) is poll and poll.generation == generation and self._host.is_mounted(instance_id)

    def stop(self, instance_id: str) -> bool:
        poll = self._polls.pop(instance_id, None)
        if poll is None:
            return False
        poll.generation += 1
        if poll.timer is not None and not poll.timer.done():
            poll.timer.cancel()
        logger.info("poll_stopped id=%s in_flight=%s", instance_id, poll.in_flight)
        return True

    def _release(self, instance_id: str, poll: _PollState) -> None:
        """Drop the poll state of an instance unmounted through the host."""
        if self._polls.get(instance_id) is poll:
            del self._polls[instance_id]
        poll.generation += 1
        logger.info("poll_stopped id=%s reason=unmounted", instance_id)

    async def aclose(self) -> None:
        polls = list(self._polls.values())
        for instance_id in list(self._polls.keys()):
            self.stop(instance_id)
        pending = [t for p in polls for t in (p.timer, p.fetch) if t is not None and not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def remove(self, instance_id: str) -> bool:
        """Stop polling for ``instance_id`` and unmount it from the host."""
        self.stop(instance_id)
        return self._host.unmount(instance_id)
