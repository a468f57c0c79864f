from __future__ import annotations

import ipaddress
import re
from typing import Optional
from urllib.parse import quote, urlsplit

import idna

ALLOWED_SCHEMES = ("http", "https", "mailto")

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")
_DEFAULT_PORTS = {"http": 80, "https": 443}
_FORBIDDEN_HOST_CHARS = frozenset(" #%/:<>?@[\\]^|")
_TAB_NEWLINE_RE = re.compile(r"[\t\n\r]")
_LEADING_SLASHES = "/\\"

# Printable ASCII that still gets percent-encoded, per URL component.
# Controls and non-ASCII are always encoded as UTF-8.
_FRAGMENT_SET = frozenset(' "<>`')
_QUERY_SET = frozenset(' "#<>')
_SPECIAL_QUERY_SET = _QUERY_SET | {"'"}
_PATH_SET = _QUERY_SET | frozenset("?^`{}")
_USERINFO_SET = _PATH_SET | frozenset("/:;=@[\\]|")


def sanitize_url(value) -> Optional[str]:
    """Return the canonical form of ``value`` as an http(s)/mailto URL, or None.

    Bare hosts such as ``example.com`` are treated as https. The canonical
    form lower-cases scheme and host, punycodes IDN hosts (UTS 46, non
    transitional), drops default ports, resolves dot segments and
    percent-encodes what a browser would.
    """
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None

    candidate = trimmed if _SCHEME_RE.match(trimmed) else f"https://{trimmed}"
    candidate = _TAB_NEWLINE_RE.sub("", candidate)
    scheme, _, rest = candidate.partition(":")
    scheme = scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        return None

    try:
        if scheme == "mailto":
            return _serialize_opaque(scheme, rest)
        return _serialize_hierarchical(scheme, rest)
    except ValueError:
        return None


def domain_of(url: str) -> str:
    if not isinstance(url, str):
        return ""
    try:
        host = urlsplit(url).hostname or ""
    except ValueError:
        return ""
    if host.startswith("www."):
        host = host[4:]
    return host


def _serialize_hierarchical(scheme: str, rest: str) -> str:
    body, hash_sep, fragment = rest.partition("#")
    body, query_sep, query = body.partition("?")
    # Backslashes separate path segments in http(s) URLs, and any run of
    # leading slashes before the authority is accepted.
    body = body.replace("\\", "/").lstrip(_LEADING_SLASHES)
    parts = urlsplit(f"{scheme}://{body}")
    host = _canonical_host(parts.hostname or "")

    netloc = host
    port = parts.port
    if port is not None and port != _DEFAULT_PORTS.get(scheme):
        netloc = f"{netloc}:{port}"
    if "@" in parts.netloc:
        userinfo = _canonical_userinfo(parts.netloc.rpartition("@")[0])
        if userinfo:
            netloc = f"{userinfo}@{netloc}"

    out = f"{scheme}://{netloc}{_percent_encode(_remove_dot_segments(parts.path or '/'), _PATH_SET)}"
    if query_sep:
        out += "?" + _percent_encode(query, _SPECIAL_QUERY_SET)
    if hash_sep:
        out += "#" + _percent_encode(fragment, _FRAGMENT_SET)
    return out


def _serialize_opaque(scheme: str, rest: str) -> str:
    body, hash_sep, fragment = rest.partition("#")
    path, query_sep, query = body.partition("?")
    out = f"{scheme}:{_percent_encode(path, frozenset())}"
    if query_sep:
        out += "?" + _percent_encode(query, _QUERY_SET)
    if hash_sep:
        out += "#" + _percent_encode(fragment, _FRAGMENT_SET)
    return out


def _canonical_userinfo(userinfo: str) -> str:
    user, sep, password = userinfo.partition(":")
    user = _percent_encode(user, _USERINFO_SET)
    if sep and password:
        return f"{user}:{_percent_encode(password, _USERINFO_SET)}"
    return user


def _canonical_host(host: str) -> str:
    if not host:
        raise ValueError("missing host")
    if ":" in host:
        return f"[{ipaddress.IPv6Address(host).compressed}]"
    if not host.isascii():
        host = _to_ascii_host(host)
    for ch in host:
        if ch in _FORBIDDEN_HOST_CHARS or ord(ch) < 0x20 or ord(ch) == 0x7F:
            raise ValueError(f"forbidden host character {ch!r}")
    return host.lower()


def _to_ascii_host(host: str) -> str:
    # idna.IDNAError is a UnicodeError, so a ValueError for the caller.
    try:
        return idna.encode(host, uts46=True, transitional=False).decode("ascii")
    except idna.IDNAError:
        # IDNA 2008 refuses some code points (emoji) that UTS 46 mapping still allows.
        mapped = idna.uts46_remap(host, std3_rules=False, transitional=False)
        return ".".join(
            label if label.isascii() else "xn--" + label.encode("punycode").decode("ascii")
            for label in mapped.split(".")
        )


def _remove_dot_segments(path: str) -> str:
    segments = path.split("/")[1:]
    out = []
    for i, seg in enumerate(segments):
        last = i == len(segments) - 1
        low = seg.lower()
        if low in (".", "%2e"):
            if last:
                out.append("")
            continue
        if low in ("..", ".%2e", "%2e.", "%2e%2e"):
            if out:
                out.pop()
            if last:
                out.append("")
            continue
        out.append(seg)
    return "/" + "/".join(out)


def _percent_encode(text: str, encode_set: frozenset) -> str:
    return "".join(
        quote(ch, safe="") if ord(ch) < 0x20 or ord(ch) > 0x7E or ch in encode_set else ch
        for ch in text
    )
