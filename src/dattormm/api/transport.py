"""Connection settings shared by the token endpoint and the REST client."""
import ssl

# Vendor default platform; other regions are selected with DRMM_API_URL / api_url
DEFAULT_API_URL = "https://pinotage-api.centrastage.net"

DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10


def normalize_api_url(api_url: str) -> str:
    """Strip trailing slashes and a trailing ``/api`` segment.

    Users copy the URL from the portal in either form; the client appends
    ``/api`` itself.
    """
    url = api_url.strip().rstrip("/")
    if url.lower().endswith("/api"):
        url = url[:-4]
    return url


def create_ssl_context() -> ssl.SSLContext:
    """Certificate-verifying context restricted to TLS 1.2."""
    context = ssl.create_default_context()
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.maximum_version = ssl.TLSVersion.TLSv1_2
    return context
