import os

from api_proxy.proxy.headers import HeaderPolicy
from api_proxy.routing.table import build_route_table


def _parse_key_value_pairs(raw: str) -> dict:
    mapping: dict = {}
    if not raw:
        return mapping
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "=" in entry:
            key, val = entry.split("=", 1)
            key = key.strip()
            val = val.strip()
            if key and val:
                mapping[key] = val
    return mapping


SERVICE_NAME = os.getenv("SERVICE_NAME", "edge-api-proxy")
HOST = os.environ.get("HOSTNAME", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8000"))

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = _parse_key_value_pairs(os.getenv("OTLP_HEADERS", ""))

# Ordered "prefix=url" pairs; empty means the built-in table
PROXY_ROUTES = os.getenv("PROXY_ROUTES", "")
ROUTE_TABLE = build_route_table(PROXY_ROUTES)

PROXY_HEADER_POLICY = HeaderPolicy.parse(os.getenv("PROXY_HEADER_POLICY", "strict"))
VERTEX_ROUTE_PREFIX = os.getenv("VERTEX_ROUTE_PREFIX", "/vertex")

CDN_CACHE_CONTROL_HEADER = os.getenv(
    "CDN_CACHE_CONTROL_HEADER", "Netlify-CDN-Cache-Control"
)
CDN_CACHE_ID_HEADER = os.getenv("CDN_CACHE_ID_HEADER", "Netlify-Cache-Id")
