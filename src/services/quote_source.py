from __future__ import annotations

import logging
import math
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Protocol

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from urllib3.util import Retry

from .errors import InvalidUpstreamResponse, UpstreamUnavailable
from .rate_types import UpstreamQuote

logger = logging.getLogger(__name__)

DEFAULT_QUOTE_API_BASE = "https://coredexapi.shieldnest.org"


class QuoteSource(Protocol):
    source_name: str

    def fetch_quote(self, from_denom: str, to_denom: str) -> UpstreamQuote: ...


class _QuoteApiClient:
    def __init__(
        self,
        base_url: str = DEFAULT_QUOTE_API_BASE,
        timeout: float = 10.0,
        session: requests.Session | None = None,
        retry_attempts: int = 0,
        retry_backoff_seconds: float = 1,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        # Zero by default: a failed quote is reported once and retrying is up to the caller.
        self._retries = Retry(
            total=retry_attempts,
            backoff_factor=retry_backoff_seconds,
            status_forcelist=[429],
            allowed_methods=frozenset({"GET"}),
            raise_on_status=False,
        )
        self._injected_session = session
        self._idle_sessions: list[requests.Session] = []
        self._lock = threading.Lock()
        self._closed = False
        if session is not None:
            self._mount(session)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            idle, self._idle_sessions = self._idle_sessions, []
        for session in idle:
            session.close()

    def _mount(self, session: requests.Session) -> None:
        adapter = HTTPAdapter(max_retries=self._retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

    @contextmanager
    def _checkout(self) -> Iterator[requests.Session]:
        # One session per concurrent caller; requests.Session is not thread-safe.
        if self._injected_session is not None:
            yield self._injected_session
            return

        with self._lock:
            session = self._idle_sessions.pop() if self._idle_sessions else None
        if session is None:
            session = requests.Session()
            self._mount(session)
        try:
            yield session
        finally:
            with self._lock:
                keep = not self._closed
                if keep:
                    self._idle_sessions.append(session)
            if not keep:
                session.close()

    def get_quote(self, *, from_denom: str, to_denom: str) -> dict[str, Any]:
        return self._request("GET", "/api/quote", params={"from": from_denom, "to": to_denom})

    def _request(self, method: str, path: str, *, params: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            with self._checkout() as session:
                response = session.request(method, url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as exc:
            resp = exc.response
            status_code = getattr(resp, "status_code", None)
            payload = self._extract_error(resp)
            raise UpstreamUnavailable(
                f"Quote fetch failed: {status_code}", status_code=status_code, payload=payload
            ) from exc
        except requests.RequestException as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            raise UpstreamUnavailable("Quote API request failed", status_code=status_code) from exc

        try:
            payload_raw = response.json()
        except ValueError as exc:
            raise InvalidUpstreamResponse(
                "Quote API returned invalid JSON", status_code=response.status_code, payload=response.text
            ) from exc

        if not isinstance(payload_raw, dict):
            raise InvalidUpstreamResponse(
                "Quote API returned unexpected payload type", status_code=response.status_code, payload=payload_raw
            )

        return payload_raw

    @staticmethod
    def _extract_error(response: Response | None) -> Any | None:
        if response is None:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text


class VpsQuoteSource(QuoteSource):
    def __init__(
        self,
        *,
        base_url: str = DEFAULT_QUOTE_API_BASE,
        timeout: float = 10.0,
        client: _QuoteApiClient | None = None,
        source_name: str = "VPS",
    ) -> None:
        self.client = client or _QuoteApiClient(base_url=base_url, timeout=timeout)
        self.source_name = source_name

    def close(self) -> None:
        self.client.close()

    def fetch_quote(self, from_denom: str, to_denom: str) -> UpstreamQuote:
        payload = self.client.get_quote(from_denom=from_denom, to_denom=to_denom)
        quote = parse_quote(payload)
        logger.debug("Fetched %s/%s rate=%s from %s", from_denom, to_denom, quote.rate, self.source_name)
        return quote


def parse_quote(payload: dict[str, Any]) -> UpstreamQuote:
    """Turn a quote API body into an ``UpstreamQuote``.

    The rate must be a finite, positive JSON number. ``path`` may be absent or
    null, otherwise a list of strings. ``liquidity`` may be absent or null,
    otherwise a finite non-negative number. Anything else raises
    ``InvalidUpstreamResponse``; a broken body never degrades to a default rate.
    """
    rate = _finite_float(payload.get("rate"))
    if rate is None or rate <= 0:
        raise InvalidUpstreamResponse("Invalid rate response", payload=payload)

    path = payload.get("path")
    if path is not None:
        if not isinstance(path, list) or not all(isinstance(hop, str) for hop in path):
            raise InvalidUpstreamResponse("Invalid path in quote response", payload=payload)
        path = list(path)

    liquidity = None
    if payload.get("liquidity") is not None:
        liquidity = _finite_float(payload["liquidity"])
        if liquidity is None or liquidity < 0:
            raise InvalidUpstreamResponse("Invalid liquidity in quote response", payload=payload)

    return UpstreamQuote(rate=rate, path=path, liquidity=liquidity)


def _finite_float(value: Any) -> float | None:
    # bool is an int subclass; JSON true/false is not a number here
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


__all__ = ["QuoteSource", "VpsQuoteSource", "parse_quote"]
