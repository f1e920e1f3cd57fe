"""Target URL → HostKey, the filesystem-safe name every artifact of a target is keyed by."""

from __future__ import annotations

from urllib.parse import urlsplit

from .utils import InvalidURL

_ALLOWED_SCHEMES = ("http", "https")


def normalize(raw_url: str) -> str:
    """
    Return the HostKey for *raw_url*: the lower-cased hostname, plus ``:port``
    when the URL names one explicitly, with every ``:`` replaced by ``_``.

        https://a.test/x        -> a.test
        https://B.test:8080/    -> b.test_8080
        http://[::1]:9000/      -> __1_9000

    Raises InvalidURL for anything that is not an absolute http(s) URL with a host.
    """
    url = (raw_url or "").strip()
    if not url:
        raise InvalidURL("empty target", target=raw_url)
    if any(ch.isspace() for ch in url):
        raise InvalidURL(f"whitespace in URL {url!r}", target=raw_url)

    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as e:
        raise InvalidURL(f"cannot parse {url!r}: {e}", target=raw_url) from e

    if parts.scheme.lower() not in _ALLOWED_SCHEMES:
        raise InvalidURL(f"unsupported scheme in {url!r}", target=raw_url)
    host = parts.hostname
    if not host:
        raise InvalidURL(f"no host in {url!r}", target=raw_url)

    key = f"{host}:{port}" if port is not None else host
    return key.replace(":", "_")
