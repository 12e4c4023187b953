# erp_backend/cache/cache_strategy.py
"""Request/response classification used by the caching transport."""
import re

import httpx

APP_SHELL = "app-shell"
STATIC = "static"
API = "api"
IMAGES = "images"

BUCKET_PREFIXES = {
    APP_SHELL: "app-shell",
    STATIC: "static-assets",
    API: "api-cache",
    IMAGES: "images",
}

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

NEVER_CACHE_PATTERNS = [
    re.compile(r"/auth/v1/"),
    re.compile(r"/storage/v1/.*upload"),
    re.compile(r"/functions/v1/"),
]

DATA_API_MARKERS = ("/rest/v1/", "/storage/v1/")

IMAGE_EXTENSIONS = re.compile(r"\.(png|jpg|jpeg|gif|svg|webp|avif)$", re.IGNORECASE)
STATIC_EXTENSIONS = re.compile(r"\.(js|css|woff|woff2|ttf|eot)$")
STATIC_DESTINATIONS = {"script", "style", "font"}


def get_cache_name(resource_type: str, version: str) -> str:
    return f"{BUCKET_PREFIXES[resource_type]}-{version}"


def is_known_bucket(name: str) -> bool:
    return any(name.startswith(prefix + "-") for prefix in BUCKET_PREFIXES.values())


def should_never_cache(url) -> bool:
    url = str(url)
    return any(p.search(url) for p in NEVER_CACHE_PATTERNS)


def has_auth_token(request: httpx.Request) -> bool:
    return request.headers.get("Authorization", "").startswith("Bearer ")


def is_write_operation(request: httpx.Request) -> bool:
    return request.method.upper() in WRITE_METHODS


def is_data_api(url) -> bool:
    url = str(url)
    return any(marker in url for marker in DATA_API_MARKERS)


def destination(request: httpx.Request) -> str:
    # browsers announce what a fetch is for; plain clients usually don't
    return request.headers.get("Sec-Fetch-Dest", "").lower()


def is_image(request: httpx.Request) -> bool:
    return destination(request) == "image" or bool(IMAGE_EXTENSIONS.search(request.url.path))


def is_static_asset(request: httpx.Request) -> bool:
    return destination(request) in STATIC_DESTINATIONS or bool(STATIC_EXTENSIONS.search(request.url.path))


def is_navigation(request: httpx.Request) -> bool:
    return (
        destination(request) == "document"
        or request.headers.get("Sec-Fetch-Mode", "").lower() == "navigate"
    )


def should_cache_response(response: httpx.Response, request: httpx.Request) -> bool:
    if response.status_code != 200:
        return False
    if is_write_operation(request) or has_auth_token(request):
        return False
    if should_never_cache(request.url):
        return False

    cache_control = response.headers.get("Cache-Control", "")
    if "no-store" in cache_control or "no-cache" in cache_control:
        return False
    return True
