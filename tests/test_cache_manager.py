import asyncio

import httpx
import pytest

from erp_backend.cache import cache_strategy as strategy
from erp_backend.cache.cache_storage import CacheEntry, CacheStorage
from erp_backend.cache.caching_transport import MAX_IMAGE_SIZE, STALE_HEADER, CachingTransport

ORIGIN = "https://app.example.com"
DATA = "https://data.example.com"


class Network:
    """Scriptable upstream: per-path bodies, call log and an offline switch."""

    def __init__(self):
        self.online = True
        self.bodies = {}
        self.headers = {}
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.method, request.url.path))
        if not self.online:
            raise httpx.ConnectError("offline", request=request)
        path = request.url.path
        if path not in self.bodies:
            return httpx.Response(404, text="missing")
        return httpx.Response(200, content=self.bodies[path], headers=self.headers.get(path, {}))

    def count(self, path):
        return sum(1 for _, p in self.calls if p == path)


@pytest.fixture
def network():
    return Network()


@pytest.fixture
async def cache(network):
    transport = CachingTransport(ORIGIN, transport=httpx.MockTransport(network), version="v2")
    await transport.activate()
    return transport


def client_for(transport):
    return httpx.AsyncClient(transport=transport)


# -------------------------
# Classification
# -------------------------

def test_never_cache_patterns():
    assert strategy.should_never_cache(f"{DATA}/auth/v1/token")
    assert strategy.should_never_cache(f"{DATA}/storage/v1/object/upload/sign")
    assert strategy.should_never_cache(f"{DATA}/functions/v1/generate-report")
    assert not strategy.should_never_cache(f"{DATA}/rest/v1/tasks")


def test_should_cache_response_rules():
    get = httpx.Request("GET", f"{DATA}/rest/v1/tasks")
    assert strategy.should_cache_response(httpx.Response(200), get)
    assert not strategy.should_cache_response(httpx.Response(201), get)
    assert not strategy.should_cache_response(httpx.Response(200, headers={"Cache-Control": "no-store"}), get)
    authed = httpx.Request("GET", f"{DATA}/rest/v1/tasks", headers={"Authorization": "Bearer t"})
    assert not strategy.should_cache_response(httpx.Response(200), authed)
    assert not strategy.should_cache_response(httpx.Response(200), httpx.Request("POST", f"{DATA}/rest/v1/tasks"))


def test_cache_names_carry_version():
    assert strategy.get_cache_name(strategy.APP_SHELL, "v2") == "app-shell-v2"
    assert strategy.get_cache_name(strategy.STATIC, "v2") == "static-assets-v2"
    assert strategy.get_cache_name(strategy.API, "v2") == "api-cache-v2"
    assert strategy.get_cache_name(strategy.IMAGES, "v2") == "images-v2"


# -------------------------
# Strategies
# -------------------------

async def test_bearer_requests_never_touch_the_cache(cache, network):
    network.bodies["/rest/v1/tasks"] = b"[1]"
    headers = {"Authorization": "Bearer user-token"}
    async with client_for(cache) as client:
        ok = await client.get(f"{DATA}/rest/v1/tasks", headers=headers)
        network.online = False
        down = await client.get(f"{DATA}/rest/v1/tasks", headers=headers)

    assert ok.status_code == 200
    assert cache.storage.total_size() == 0
    assert down.status_code == 503
    assert down.text == "Network error"


async def test_images_are_cache_first(cache, network):
    network.bodies["/logo.png"] = b"\x89PNG-small"
    async with client_for(cache) as client:
        first = await client.get(f"{ORIGIN}/logo.png")
        second = await client.get(f"{ORIGIN}/logo.png")

    assert first.content == second.content == b"\x89PNG-small"
    assert network.count("/logo.png") == 1
    assert cache.storage.has("images-v2")


async def test_large_images_are_not_cached(cache, network):
    network.bodies["/hero.jpg"] = b"x" * (MAX_IMAGE_SIZE + 1)
    async with client_for(cache) as client:
        await client.get(f"{ORIGIN}/hero.jpg")
        await client.get(f"{ORIGIN}/hero.jpg")

    assert network.count("/hero.jpg") == 2
    assert cache.storage.total_size() == 0


async def test_static_assets_are_cache_first(cache, network):
    network.bodies["/assets/index.js"] = b"console.log(1)"
    async with client_for(cache) as client:
        await client.get(f"{ORIGIN}/assets/index.js")
        cached = await client.get(f"{ORIGIN}/assets/index.js")

    assert cached.text == "console.log(1)"
    assert network.count("/assets/index.js") == 1


async def test_cross_origin_assets_are_not_cached(cache, network):
    network.bodies["/lib.js"] = b"cdn"
    async with client_for(cache) as client:
        await client.get("https://cdn.example.net/lib.js")
        await client.get("https://cdn.example.net/lib.js")

    assert network.count("/lib.js") == 2


async def test_navigation_is_stale_while_revalidate(cache, network):
    network.bodies["/dashboard"] = b"<html>v1</html>"
    nav = {"Sec-Fetch-Mode": "navigate"}
    async with client_for(cache) as client:
        first = await client.get(f"{ORIGIN}/dashboard", headers=nav)
        network.bodies["/dashboard"] = b"<html>v2</html>"
        stale = await client.get(f"{ORIGIN}/dashboard", headers=nav)
        await cache.wait_for_background()
        fresh = await client.get(f"{ORIGIN}/dashboard", headers=nav)
        await cache.wait_for_background()

    assert first.text == "<html>v1</html>"
    assert stale.text == "<html>v1</html>"
    assert fresh.text == "<html>v2</html>"


async def test_navigation_offline_without_cache(cache, network):
    network.online = False
    async with client_for(cache) as client:
        resp = await client.get(f"{ORIGIN}/settings", headers={"Sec-Fetch-Dest": "document"})

    assert resp.status_code == 503
    assert resp.text == "Offline"


async def test_data_api_is_network_first_with_stale_fallback(cache, network):
    network.bodies["/rest/v1/projects"] = b'[{"id": 1}]'
    async with client_for(cache) as client:
        fresh = await client.get(f"{DATA}/rest/v1/projects")
        network.online = False
        stale = await client.get(f"{DATA}/rest/v1/projects")
        missing = await client.get(f"{DATA}/rest/v1/users")

    assert STALE_HEADER not in fresh.headers
    assert stale.status_code == 200
    assert stale.headers[STALE_HEADER] == "true"
    assert stale.json() == [{"id": 1}]
    assert missing.status_code == 503


async def test_data_api_respects_no_store(cache, network):
    network.bodies["/rest/v1/secrets"] = b"{}"
    network.headers["/rest/v1/secrets"] = {"Cache-Control": "no-store"}
    async with client_for(cache) as client:
        await client.get(f"{DATA}/rest/v1/secrets")

    assert cache.storage.total_size() == 0


async def test_writes_and_sensitive_paths_pass_through(cache, network):
    network.bodies["/rest/v1/tasks"] = b"{}"
    network.bodies["/auth/v1/user"] = b"{}"
    async with client_for(cache) as client:
        await client.post(f"{DATA}/rest/v1/tasks", json={"title": "x"})
        await client.get(f"{DATA}/auth/v1/user")

    assert cache.storage.total_size() == 0
    assert network.calls == [("POST", "/rest/v1/tasks"), ("GET", "/auth/v1/user")]


async def test_navigation_posts_to_app_shell_are_never_cached(cache, network):
    nav = {"Sec-Fetch-Mode": "navigate"}
    async with client_for(cache) as client:
        network.bodies["/"] = b"first form result"
        first = await client.post(f"{ORIGIN}/", headers=nav, data={"q": "a"})
        network.bodies["/"] = b"second form result"
        second = await client.post(f"{ORIGIN}/", headers=nav, data={"q": "b"})
        await cache.wait_for_background()

    assert first.text == "first form result"
    assert second.text == "second form result"
    assert network.count("/") == 2
    assert cache.storage.total_size() == 0


async def test_nothing_is_cached_before_activation(network):
    transport = CachingTransport(ORIGIN, transport=httpx.MockTransport(network))
    network.bodies["/assets/app.css"] = b"body{}"
    async with client_for(transport) as client:
        await client.get(f"{ORIGIN}/assets/app.css")

    assert transport.storage.total_size() == 0


# -------------------------
# Lifecycle
# -------------------------

async def test_install_precaches_app_shell(network):
    network.bodies["/"] = b"root"
    network.bodies["/index.html"] = b"index"
    transport = CachingTransport(ORIGIN, transport=httpx.MockTransport(network))

    # /dashboard is missing upstream; install still succeeds
    assert await transport.install() == 2
    assert len(transport.storage.open("app-shell-v2").entries) == 2


async def test_activate_deletes_stale_versions(network):
    storage = CacheStorage()
    for name in ("app-shell-v1", "api-cache-v1", "images-v2", "user-uploads"):
        storage.open(name).put(CacheEntry(key="k", status=200, headers={}, body=b"1"))
    transport = CachingTransport(ORIGIN, transport=httpx.MockTransport(network), storage=storage, version="v2")

    deleted = await transport.activate()

    assert sorted(deleted) == ["api-cache-v1", "app-shell-v1"]
    assert sorted(storage.keys()) == ["images-v2", "user-uploads"]
    assert transport.controlling


async def test_activate_evicts_smallest_buckets_first(network):
    storage = CacheStorage()
    for name, size in (("images-v2", 10), ("api-cache-v2", 60), ("static-assets-v2", 50)):
        storage.open(name).put(CacheEntry(key="k", status=200, headers={}, body=b"x" * size))
    transport = CachingTransport(
        ORIGIN, transport=httpx.MockTransport(network), storage=storage, max_cache_size=100
    )

    deleted = await transport.activate()

    assert deleted == ["images-v2", "static-assets-v2"]
    assert storage.keys() == ["api-cache-v2"]
    assert storage.total_size() <= 100


async def test_concurrent_activations_share_one_run(network):
    transport = CachingTransport(ORIGIN, transport=httpx.MockTransport(network))
    first, second = await asyncio.gather(transport.activate(), transport.activate())
    assert first is second


async def test_clear_cache_message_replies_success(cache, network):
    network.bodies["/assets/a.js"] = b"a"
    async with client_for(cache) as client:
        await client.get(f"{ORIGIN}/assets/a.js")
    replies = []

    result = await cache.handle_message({"type": "CLEAR_CACHE"}, reply=replies.append)

    assert result == {"success": True}
    assert replies == [{"success": True}]
    assert cache.storage.keys() == []


async def test_skip_waiting_activates(network):
    transport = CachingTransport(ORIGIN, transport=httpx.MockTransport(network))
    assert not transport.controlling

    await transport.handle_message({"type": "SKIP_WAITING"})

    assert transport.controlling


def test_from_settings_uses_app_url_and_version(settings):
    configured = settings.model_copy(update={"cache_version": "v9"})
    transport = CachingTransport.from_settings(configured, transport=httpx.MockTransport(Network()))

    assert transport.origin.host == "app.example.com"
    assert transport.bucket_name(strategy.API) == "api-cache-v9"
