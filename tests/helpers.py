"""
Scripted event-stream backend served through httpx.MockTransport.
"""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import httpx

SSE_HEADERS = {"content-type": "text/event-stream"}


def sse_frame(data: Any = None, event: Optional[str] = None) -> bytes:
    """Encode one SSE frame; dicts and lists are sent as JSON."""
    lines = []
    if event:
        lines.append(f"event: {event}")
    if data is not None:
        if not isinstance(data, str):
            data = json.dumps(data)
        for line in data.split("\n"):
            lines.append(f"data: {line}")
    return ("\n".join(lines) + "\n\n").encode("utf-8")


class LiveFeed:
    """An open-ended stream body that the test pushes frames into."""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed_by_client = False

    def push(self, data: Any = None, event: Optional[str] = None) -> None:
        self._queue.put_nowait(sse_frame(data, event))

    def push_raw(self, chunk: bytes) -> None:
        self._queue.put_nowait(chunk)

    def end(self) -> None:
        self._queue.put_nowait(None)

    async def body(self):
        try:
            while True:
                chunk = await self._queue.get()
                if chunk is None:
                    return
                yield chunk
        except (asyncio.CancelledError, GeneratorExit):
            self.closed_by_client = True
            raise


class FeedServer:
    """
    Scripted backend for both feeds.

    Each path maps to a list of responders consumed one per request, so a
    test can script what the first, second, ... connection sees.
    """

    def __init__(self):
        self._responders: Dict[str, List[Callable[[httpx.Request], httpx.Response]]] = {}
        self.requests: List[httpx.Request] = []

    def add_frames(self, path: str, *frames: bytes, status: int = 200) -> None:
        body = b"".join(frames)
        self._responders.setdefault(path, []).append(
            lambda request: httpx.Response(status, headers=SSE_HEADERS, content=body)
        )

    def add_live(self, path: str) -> LiveFeed:
        feed = LiveFeed()
        self._responders.setdefault(path, []).append(
            lambda request: httpx.Response(200, headers=SSE_HEADERS, content=feed.body())
        )
        return feed

    def add_status(self, path: str, status: int, payload: Optional[dict] = None) -> None:
        self._responders.setdefault(path, []).append(
            lambda request: httpx.Response(status, json=payload or {})
        )

    def add_error(self, path: str, error: Exception) -> None:
        def raise_error(request):
            raise error

        self._responders.setdefault(path, []).append(raise_error)

    def requests_to(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responders = self._responders.get(request.url.path)
        if not responders:
            return httpx.Response(404, json={"errorMessage": "not found"})
        return responders.pop(0)(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` on the event loop until it holds or time runs out."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)
