from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable
from urllib.parse import urlencode, urlsplit


DEFAULT_API_URL = "https://voip.ms/api/v1/rest.php"

METHOD_FETCH = "getSMS"
METHOD_SEND = "sendSMS"
METHOD_DELETE = "deleteSMS"
METHODS = frozenset({METHOD_FETCH, METHOD_SEND, METHOD_DELETE})


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str


class QueryBuilder:
    """Ordered query parameters, encoded once by build()."""

    def __init__(self, *, base_url: str) -> None:
        parts = urlsplit(base_url)
        if parts.scheme not in {"http", "https"} or not parts.netloc:
            raise ValueError(f"base url must be an absolute http(s) url: {base_url!r}")
        if parts.query or parts.fragment or "?" in base_url:
            raise ValueError("base url must not carry a query string or fragment")
        self._base_url = base_url
        self._params: list[tuple[str, str]] = []

    def add(self, key: str, value: str) -> "QueryBuilder":
        if not key:
            raise ValueError("query parameter key must be non-empty")
        self._params.append((key, str(value)))
        return self

    def extend(self, params: Iterable[tuple[str, str]]) -> "QueryBuilder":
        for key, value in params:
            self.add(key, value)
        return self

    def build(self) -> str:
        if not self._params:
            return self._base_url
        return f"{self._base_url}?{urlencode(self._params)}"


def build_request_url(
    *,
    base_url: str,
    credentials: Credentials,
    method: str,
    params: Iterable[tuple[str, str]],
) -> str:
    if method not in METHODS:
        raise ValueError(f"unsupported api method: {method}")
    qb = QueryBuilder(base_url=base_url).extend(params)
    qb.add("api_username", credentials.username)
    qb.add("api_password", credentials.password)
    qb.add("method", method)
    return qb.build()
