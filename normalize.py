"""
Normalization of user supplied profile values.
"""

import re
from typing import List, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
_DEFAULT_PORTS = (80, 443)
# "www." is dropped only from a single leading label, and never when the rest
# looks like a bare country second-level domain such as co.uk.
_STRIP_WWW_RE = re.compile(r"^www\.(?!www\.)[a-z\-\d]{1,63}\.[a-z.\-\d]{2,63}$")
_BARE_SLD_RE = re.compile(r"^[a-z]{2,3}\.[a-z]{2}$")


def normalize_url(value: str) -> str:
    """
    Rewrite a URL into canonical absolute https form.

    "" stays "". Otherwise the scheme defaults to (and is forced to) https,
    scheme and host are lowercased, a leading "www." and default ports are
    dropped, the trailing slash is removed and query parameters are sorted.
    Normalizing an already normalized URL returns it unchanged.

    Raises ValueError when the value has no usable host.
    """
    s = value.strip()
    if not s:
        return ""
    if s.startswith("//"):
        s = "https:" + s
    elif not _SCHEME_RE.match(s):
        s = "https://" + s

    parts = urlsplit(s)
    host = parts.hostname
    if not host:
        raise ValueError(f"Invalid URL: {value!r}")
    if _STRIP_WWW_RE.match(host) and not _BARE_SLD_RE.match(host[4:]):
        host = host[4:]
    if ":" in host:
        host = f"[{host}]"

    netloc = host
    port = parts.port
    if port and port not in _DEFAULT_PORTS:
        netloc = f"{netloc}:{port}"
    if parts.username:
        userinfo = parts.username
        if parts.password:
            userinfo += ":" + parts.password
        netloc = f"{userinfo}@{netloc}"

    path = re.sub(r"/{2,}", "/", parts.path).rstrip("/")
    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
    return urlunsplit(("https", netloc, path, query, parts.fragment))


def parse_skills(skills: Union[List[str], str], legacy_padding: bool = False) -> List[str]:
    """
    Accept skills as a list (returned as is) or a comma separated string.

    With legacy_padding each split item keeps the single leading space older
    clients stored, e.g. "js, node" -> [" js", " node"]. Every split item is
    kept, so a string of N items always gives N entries.
    """
    if isinstance(skills, list):
        return skills
    items = [item.strip() for item in skills.split(",")]
    if legacy_padding:
        return [" " + item for item in items]
    return items
