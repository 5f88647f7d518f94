"""
Mercure real-time updates.

A topic subscription stays pending until a hub is known (configured up front or
discovered from a `Link: <...>; rel="mercure"` response header). Once active,
each topic owns one event source and one consumer task; both are torn down when
the last subscriber leaves.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import re
from contextlib import aclosing
from dataclasses import dataclass, field
from http.cookiejar import Cookie
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Mapping,
    Optional,
    Protocol,
)

import httpx

from .errors import MercureHubUnknownError
from .jsonld import DocumentCache, transform_document
from .observability import log_event

COOKIE_NAME = "mercureAuthorization"
DEFAULT_RECONNECT_DELAY = 3.0

_HUB_LINK_RE = re.compile(r'<([^>]+)>;\s+rel=(?:mercure|"[^"]*mercure[^"]*")')

SubscriptionCallback = Callable[[Any], Any]


def extract_hub_url(headers: Optional[Mapping[str, str]]) -> Optional[str]:
    """Return the Mercure hub advertised in a Link header, if any."""
    if not headers:
        return None
    link = headers.get("link") or headers.get("Link")
    if not link:
        return None
    match = _HUB_LINK_RE.search(link)
    return match.group(1) if match else None


@dataclass
class MercureContext:
    hub: Optional[str] = None
    jwt: Optional[str] = None
    topic_url: str = ""


# --- Server-sent events ------------------------------------------------------ #


@dataclass
class ServerSentEvent:
    event: str = "message"
    data: str = ""
    id: Optional[str] = None
    retry: Optional[int] = None


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[ServerSentEvent]:
    """Parse text/event-stream lines into events (blank line dispatches)."""
    data: list[str] = []
    event_type = ""
    last_id: Optional[str] = None
    retry: Optional[int] = None

    async for raw in lines:
        line = raw.rstrip("\r\n")
        if not line:
            if data:
                yield ServerSentEvent(
                    event=event_type or "message",
                    data="\n".join(data),
                    id=last_id,
                    retry=retry,
                )
            data = []
            event_type = ""
            retry = None
            continue
        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if name == "data":
            data.append(value)
        elif name == "event":
            event_type = value
        elif name == "id":
            if "\0" not in value:
                last_id = value
        elif name == "retry":
            if value.isdigit():
                retry = int(value)


class EventSource(Protocol):
    def events(self) -> AsyncIterator[ServerSentEvent]: ...

    async def aclose(self) -> None: ...


EventSourceFactory = Callable[[httpx.URL, Optional[httpx.Cookies]], EventSource]


class HttpxEventSource:
    """
    Long-lived SSE stream over httpx.
    Reconnects after the server-advertised (or default) delay until closed;
    `reconnect_delay=None` stops after the first disconnect.
    """

    def __init__(
        self,
        url: httpx.URL,
        cookies: Optional[httpx.Cookies] = None,
        *,
        reconnect_delay: Optional[float] = DEFAULT_RECONNECT_DELAY,
        http: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.url = url
        self.reconnect_delay = reconnect_delay
        self.log = logger or logging.getLogger("hydra_provider.mercure")
        self.last_event_id: Optional[str] = None
        self._closed = False
        self._owns_http = http is None
        # Cookies ride on the client; only set when credentials are wanted.
        self.http = http or httpx.AsyncClient(
            cookies=cookies,
            timeout=httpx.Timeout(None, connect=10.0),
        )

    async def events(self) -> AsyncIterator[ServerSentEvent]:
        delay = self.reconnect_delay
        while not self._closed:
            headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
            if self.last_event_id is not None:
                headers["Last-Event-ID"] = self.last_event_id
            try:
                async with self.http.stream("GET", self.url, headers=headers) as resp:
                    resp.raise_for_status()
                    async for event in iter_sse(resp.aiter_lines()):
                        if event.id is not None:
                            self.last_event_id = event.id
                        if event.retry is not None:
                            delay = event.retry / 1000
                        yield event
            except httpx.HTTPError as exc:
                log_event(
                    "mercure_stream_error",
                    self.log,
                    level=logging.WARNING,
                    endpoint=str(self.url),
                    error_type=type(exc).__name__,
                )

            if self._closed or delay is None:
                return
            await asyncio.sleep(delay)

    async def aclose(self) -> None:
        self._closed = True
        if self._owns_http:
            await self.http.aclose()


def default_event_source_factory(
    url: httpx.URL, cookies: Optional[httpx.Cookies]
) -> EventSource:
    return HttpxEventSource(url, cookies)


# --- Subscriptions ----------------------------------------------------------- #


@dataclass
class Subscription:
    topic: str
    callback: SubscriptionCallback
    subscribed: bool = False
    event_source: Optional[EventSource] = None
    task: Optional["asyncio.Task[None]"] = None
    count: int = 1


@dataclass
class SubscriptionManager:
    """Reference-counted topic subscriptions sharing one MercureContext."""

    context: MercureContext
    cache: Optional[DocumentCache] = None
    base_url: str = ""
    add_to_cache: bool = True
    event_source_factory: EventSourceFactory = default_event_source_factory
    cookies: httpx.Cookies = field(default_factory=httpx.Cookies)
    subscriptions: Dict[str, Subscription] = field(default_factory=dict)
    log: logging.Logger = field(
        default_factory=lambda: logging.getLogger("hydra_provider.mercure")
    )

    def subscribe(self, topic: str, callback: SubscriptionCallback) -> Subscription:
        sub = self.subscriptions.get(topic)
        if sub is not None:
            sub.count += 1
            log_event("mercure_subscribe", self.log, topic=topic, refcount=sub.count)
            return sub

        sub = Subscription(topic=topic, callback=callback)
        self.subscriptions[topic] = sub
        if self.context.hub is not None:
            self._activate(sub)
        log_event("mercure_subscribe", self.log, topic=topic, refcount=sub.count)
        return sub

    async def unsubscribe(self, topic: str) -> None:
        sub = self.subscriptions.get(topic)
        if sub is None:
            return

        sub.count -= 1
        log_event(
            "mercure_unsubscribe", self.log, topic=topic, refcount=max(sub.count, 0)
        )
        if sub.count > 0:
            return

        sub.count = 0
        del self.subscriptions[topic]
        await self._teardown(sub)

    def discover_hub(self, headers: Optional[Mapping[str, str]]) -> Optional[str]:
        """Adopt the first advertised hub and activate every pending subscription."""
        if self.context.hub is not None:
            return self.context.hub

        hub = extract_hub_url(headers)
        if not hub:
            return None

        self.context.hub = hub
        log_event("mercure_hub_discovered", self.log, hub=hub)
        for sub in list(self.subscriptions.values()):
            if not sub.subscribed:
                self._activate(sub)
        return hub

    async def aclose(self) -> None:
        subs = list(self.subscriptions.values())
        self.subscriptions.clear()
        for sub in subs:
            await self._teardown(sub)

    def hub_url(self) -> httpx.URL:
        hub = self.context.hub
        if hub is None:
            raise MercureHubUnknownError("No Mercure hub configured or discovered yet.")
        return httpx.URL(self.base_url).join(hub) if self.base_url else httpx.URL(hub)

    def stream_url(self, topic: str) -> httpx.URL:
        topic_base = self.context.topic_url or self.base_url
        resolved = httpx.URL(topic_base).join(topic) if topic_base else httpx.URL(topic)
        return self.hub_url().copy_add_param("topic", str(resolved))

    def _set_credential_cookie(self, hub: httpx.URL) -> None:
        cookie = Cookie(
            version=0,
            name=COOKIE_NAME,
            value=self.context.jwt or "",
            port=None,
            port_specified=False,
            domain=hub.host,
            domain_specified=True,
            domain_initial_dot=False,
            path=hub.path or "/",
            path_specified=True,
            secure=True,
            expires=None,
            discard=True,
            comment=None,
            comment_url=None,
            rest={"SameSite": "None"},
        )
        self.cookies.jar.set_cookie(cookie)

    def _activate(self, sub: Subscription) -> None:
        url = self.stream_url(sub.topic)
        with_credentials = self.context.jwt is not None
        if with_credentials:
            self._set_credential_cookie(self.hub_url())

        source = self.event_source_factory(url, self.cookies if with_credentials else None)
        sub.event_source = source
        sub.task = asyncio.get_running_loop().create_task(self._consume(sub, source))
        sub.subscribed = True

    async def _consume(self, sub: Subscription, source: EventSource) -> None:
        async with aclosing(source.events()) as events:
            async for event in events:
                await self._dispatch(sub, event)

    async def _dispatch(self, sub: Subscription, event: ServerSentEvent) -> None:
        if event.event != "message":
            return
        try:
            document = transform_document(
                json.loads(event.data),
                cache=self.cache,
                add_to_cache=self.add_to_cache,
            )
            result = sub.callback(document)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            # One bad update must not kill the topic stream.
            self.log.exception(
                "mercure_message_error",
                extra={"topic": sub.topic, "error_type": type(exc).__name__},
            )

    async def _teardown(self, sub: Subscription) -> None:
        if not sub.subscribed:
            return
        task, source = sub.task, sub.event_source
        sub.subscribed = False
        sub.task = None
        sub.event_source = None
        try:
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception as exc:
                    # The consumer already died; its stream still needs closing.
                    log_event(
                        "mercure_stream_error",
                        self.log,
                        level=logging.WARNING,
                        topic=sub.topic,
                        error_type=type(exc).__name__,
                    )
        finally:
            if source is not None:
                await source.aclose()


__all__ = [
    "COOKIE_NAME",
    "extract_hub_url",
    "MercureContext",
    "ServerSentEvent",
    "iter_sse",
    "EventSource",
    "EventSourceFactory",
    "HttpxEventSource",
    "default_event_source_factory",
    "Subscription",
    "SubscriptionManager",
]
