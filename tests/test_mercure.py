import asyncio
import json

import httpx
import pytest
import respx
from hydra_provider.errors import MercureHubUnknownError
from hydra_provider.jsonld import DocumentCache
from hydra_provider.mercure import (
    COOKIE_NAME,
    HttpxEventSource,
    MercureContext,
    ServerSentEvent,
    SubscriptionManager,
    extract_hub_url,
    iter_sse,
)

HUB = "https://api.test/.well-known/mercure"


class FakeEventSource:
    def __init__(self, url, cookies):
        self.url = url
        self.cookies = cookies
        self.closed = False
        self.queue = asyncio.Queue()

    async def events(self):
        while True:
            yield await self.queue.get()

    async def aclose(self):
        self.closed = True


@pytest.fixture
def sources():
    return []


@pytest.fixture
def make_manager(sources):
    def factory(url, cookies):
        source = FakeEventSource(url, cookies)
        sources.append(source)
        return source

    def _make(hub=None, jwt=None, cache=None):
        context = MercureContext(hub=hub, jwt=jwt, topic_url="https://api.test")
        return SubscriptionManager(
            context=context,
            cache=cache,
            base_url="https://api.test",
            event_source_factory=factory,
        )

    return _make


async def _lines(*lines):
    for line in lines:
        yield line


def test_extract_hub_url_variants():
    assert extract_hub_url({"link": f"<{HUB}>; rel=mercure"}) == HUB
    assert (
        extract_hub_url(
            {"Link": f'<https://api.test/docs.jsonld>; rel="http://www.w3.org/ns/hydra/core#apiDocumentation",<{HUB}>; rel="mercure"'}
        )
        == HUB
    )
    assert extract_hub_url({"link": f'<{HUB}>; rel="preload mercure"'}) == HUB
    assert extract_hub_url({"link": "<https://api.test/docs>; rel=describedby"}) is None
    assert extract_hub_url({}) is None
    assert extract_hub_url(None) is None


@pytest.mark.asyncio
async def test_iter_sse_parses_events():
    events = [
        e
        async for e in iter_sse(
            _lines(
                ": keep-alive",
                "id: 1",
                "data: {\"a\":",
                "data: 1}",
                "",
                "event: ping",
                "data:x",
                "retry: 2500",
                "",
                "",
            )
        )
    ]

    assert events == [
        ServerSentEvent(event="message", data='{"a":\n1}', id="1"),
        ServerSentEvent(event="ping", data="x", id="1", retry=2500),
    ]


@pytest.mark.asyncio
async def test_subscribe_without_hub_stays_pending(make_manager, sources):
    manager = make_manager()
    sub = manager.subscribe("/books/1", lambda doc: None)

    assert sub.subscribed is False
    assert sub.count == 1
    assert sources == []


@pytest.mark.asyncio
async def test_subscribe_with_known_hub_opens_stream(make_manager, sources):
    manager = make_manager(hub=HUB)
    sub = manager.subscribe("/books/1", lambda doc: None)

    assert sub.subscribed is True
    assert len(sources) == 1
    url = sources[0].url
    assert url.path == "/.well-known/mercure"
    assert url.params["topic"] == "https://api.test/books/1"
    assert sources[0].cookies is None
    await manager.aclose()


@pytest.mark.asyncio
async def test_refcount_keeps_stream_until_last_unsubscribe(make_manager, sources):
    manager = make_manager(hub=HUB)
    manager.subscribe("/books/1", lambda doc: None)
    manager.subscribe("/books/1", lambda doc: None)

    assert len(sources) == 1
    assert manager.subscriptions["/books/1"].count == 2

    await manager.unsubscribe("/books/1")
    assert sources[0].closed is False
    assert "/books/1" in manager.subscriptions

    await manager.unsubscribe("/books/1")
    assert sources[0].closed is True
    assert "/books/1" not in manager.subscriptions


class BrokenEventSource(FakeEventSource):
    async def events(self):
        raise ConnectionResetError("peer reset")
        yield  # pragma: no cover


@pytest.mark.asyncio
async def test_unsubscribe_closes_stream_after_consumer_failure(caplog):
    opened = []

    def factory(url, cookies):
        source = BrokenEventSource(url, cookies)
        opened.append(source)
        return source

    manager = SubscriptionManager(
        context=MercureContext(hub=HUB, topic_url="https://api.test"),
        base_url="https://api.test",
        event_source_factory=factory,
    )
    manager.subscribe("/books/1", lambda doc: None)
    manager.subscribe("/books/2", lambda doc: None)
    await asyncio.gather(
        *(s.task for s in manager.subscriptions.values()), return_exceptions=True
    )

    await manager.unsubscribe("/books/1")
    await manager.unsubscribe("/books/2")

    assert [s.closed for s in opened] == [True, True]
    assert manager.subscriptions == {}
    assert any(r.getMessage() == "mercure_stream_error" for r in caplog.records)


def test_stream_url_requires_known_hub(make_manager):
    manager = make_manager()
    with pytest.raises(MercureHubUnknownError):
        manager.stream_url("/books/1")


@pytest.mark.asyncio
async def test_unsubscribe_unknown_topic_is_noop(make_manager):
    manager = make_manager(hub=HUB)
    await manager.unsubscribe("/nope")
    assert manager.subscriptions == {}


@pytest.mark.asyncio
async def test_hub_discovery_upgrades_pending_subscriptions(make_manager, sources):
    manager = make_manager()
    manager.subscribe("/books/1", lambda doc: None)
    manager.subscribe("/books/2", lambda doc: None)
    assert sources == []

    hub = manager.discover_hub(httpx.Headers({"Link": f'<{HUB}>; rel="mercure"'}))

    assert hub == HUB
    assert all(s.subscribed for s in manager.subscriptions.values())
    assert [s.url.params["topic"] for s in sources] == [
        "https://api.test/books/1",
        "https://api.test/books/2",
    ]
    await manager.aclose()
    assert all(s.closed for s in sources)


@pytest.mark.asyncio
async def test_hub_is_discovered_only_once(make_manager):
    manager = make_manager()
    manager.discover_hub({"link": f"<{HUB}>; rel=mercure"})
    manager.discover_hub({"link": "<https://other.test/hub>; rel=mercure"})
    assert manager.context.hub == HUB


@pytest.mark.asyncio
async def test_relative_hub_resolves_against_entrypoint(make_manager, sources):
    manager = make_manager()
    manager.subscribe("/books/1", lambda doc: None)
    manager.discover_hub({"link": "</.well-known/mercure>; rel=mercure"})

    assert str(sources[0].url).startswith("https://api.test/.well-known/mercure?")
    await manager.aclose()


@pytest.mark.asyncio
async def test_jwt_sets_scoped_secure_cookie(make_manager, sources):
    manager = make_manager(hub=HUB, jwt="token-123")
    manager.subscribe("/books/1", lambda doc: None)

    cookies = sources[0].cookies
    assert cookies is manager.cookies
    cookie = next(iter(cookies.jar))
    assert cookie.name == COOKIE_NAME
    assert cookie.value == "token-123"
    assert cookie.domain == "api.test"
    assert cookie.path == "/.well-known/mercure"
    assert cookie.secure is True
    assert cookie.get_nonstandard_attr("SameSite") == "None"
    await manager.aclose()


@pytest.mark.asyncio
async def test_messages_are_transformed_and_delivered(make_manager, sources):
    cache = DocumentCache()
    manager = make_manager(hub=HUB, cache=cache)
    received = []
    delivered = asyncio.Event()

    async def callback(doc):
        received.append(doc)
        delivered.set()

    manager.subscribe("/books/1", callback)
    source = sources[0]
    await source.queue.put(ServerSentEvent(event="ping", data="{}"))
    await source.queue.put(
        ServerSentEvent(
            data=json.dumps(
                {"@id": "/books/1", "title": "Dune", "author": {"@id": "/authors/7"}}
            )
        )
    )
    await asyncio.wait_for(delivered.wait(), timeout=1)

    assert len(received) == 1
    assert received[0]["id"] == "/books/1"
    assert received[0]["author"] == "/authors/7"
    assert "/authors/7" in cache
    await manager.aclose()


@pytest.mark.asyncio
async def test_bad_message_does_not_stop_stream(make_manager, sources, caplog):
    manager = make_manager(hub=HUB)
    received = []
    delivered = asyncio.Event()

    def callback(doc):
        received.append(doc)
        delivered.set()

    manager.subscribe("/books/1", callback)
    await sources[0].queue.put(ServerSentEvent(data="not json"))
    await sources[0].queue.put(ServerSentEvent(data='{"@id": "/books/1"}'))
    await asyncio.wait_for(delivered.wait(), timeout=1)

    assert [d["id"] for d in received] == ["/books/1"]
    assert any(r.getMessage() == "mercure_message_error" for r in caplog.records)
    await manager.aclose()


@pytest.mark.asyncio
@respx.mock
async def test_httpx_event_source_streams_messages():
    url = httpx.URL(HUB).copy_add_param("topic", "https://api.test/books/1")
    route = respx.get(url).mock(
        return_value=httpx.Response(
            200,
            headers={"Content-Type": "text/event-stream"},
            content=b'id: 5\ndata: {"@id": "/books/1"}\n\n',
        )
    )
    source = HttpxEventSource(url, reconnect_delay=None)

    events = [e async for e in source.events()]
    await source.aclose()

    assert [e.data for e in events] == ['{"@id": "/books/1"}']
    assert source.last_event_id == "5"
    assert route.calls[0].request.headers["Accept"] == "text/event-stream"
