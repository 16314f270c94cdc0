"""URL canonicalization.

Semantically equivalent URLs must map to one string, since the canonical
form is the dedup key for short links within a workspace. Steps run in a
fixed order:

1. trim, reject empty input
2. add ``http://`` when the scheme separator is missing
3. split into scheme, userinfo, host, port, path, query, fragment
4. lowercase scheme and host, accept only http and https
5. drop the scheme's default port
6. collapse repeated slashes, strip the trailing slash (except for ``/``)
7. sort query parameters by key, keeping duplicates in order
8. drop the fragment

Path case, query value case and userinfo are kept verbatim.
"""

import re
from urllib.parse import urlsplit

from tinylink_api.core.exceptions import InvalidUrlError

SUPPORTED_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}

_SLASH_RUN = re.compile(r"/+")


def canonicalize(raw: str | None) -> str:
    """Return the canonical form of ``raw``.

    Raises:
        InvalidUrlError: blank input, unsupported scheme, missing host or a
            port that is not a number in 0-65535.
    """
    if raw is None:
        raise InvalidUrlError("URL must not be empty")

    url = raw.strip()
    if not url:
        raise InvalidUrlError("URL must not be empty")

    if "://" not in url:
        url = f"http:{url}" if url.startswith("//") else f"http://{url}"

    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise InvalidUrlError(f"Malformed URL: {e}") from e

    scheme = parts.scheme.lower()
    if scheme not in SUPPORTED_SCHEMES:
        raise InvalidUrlError(f"Unsupported scheme '{scheme}'; only http and https are allowed")

    userinfo, host, port = _split_netloc(parts.netloc)
    if port == DEFAULT_PORTS[scheme]:
        port = None

    authority = host
    if userinfo is not None:
        authority = f"{userinfo}@{authority}"
    if port is not None:
        authority = f"{authority}:{port}"

    canonical = f"{scheme}://{authority}{_normalize_path(parts.path)}"
    query = _normalize_query(parts.query)
    if query:
        canonical = f"{canonical}?{query}"
    return canonical


def _split_netloc(netloc: str) -> tuple[str | None, str, int | None]:
    """Split an authority into (userinfo, lowercased host, port)."""
    userinfo: str | None = None
    hostport = netloc
    if "@" in netloc:
        userinfo, _, hostport = netloc.rpartition("@")

    port_text = ""
    if hostport.startswith("["):
        # IPv6 literal, brackets stay part of the host
        end = hostport.find("]")
        if end == -1:
            raise InvalidUrlError("Malformed IPv6 host")
        host = hostport[: end + 1]
        rest = hostport[end + 1 :]
        if rest:
            if not rest.startswith(":"):
                raise InvalidUrlError("Malformed host")
            port_text = rest[1:]
    else:
        host, _, port_text = hostport.partition(":")

    if not host or host == "[]":
        raise InvalidUrlError("URL must include a host")

    port: int | None = None
    if port_text:
        if not port_text.isdigit() or int(port_text) > 65535:
            raise InvalidUrlError(f"Invalid port '{port_text}'")
        port = int(port_text)

    return userinfo, host.lower(), port


def _normalize_path(path: str) -> str:
    if not path:
        return "/"
    path = _SLASH_RUN.sub("/", path)
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    return path


def _normalize_query(query: str) -> str:
    if not query:
        return ""

    params: list[tuple[str, str]] = []
    for token in query.split("&"):
        if not token:
            continue
        key, _, value = token.partition("=")
        params.append((key, value))

    # sorted() is stable, so repeated keys keep their relative order
    params.sort(key=lambda param: param[0])
    return "&".join(f"{key}={value}" if value else key for key, value in params)
