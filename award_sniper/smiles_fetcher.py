from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from .config import Settings
from .identity import IdentityProvider, RandomIdentityProvider, build_headers
from .models import ParameterSet, TaxQuote
from .retry import MAX_ATTEMPTS, UpstreamError, call_with_retry

logger = logging.getLogger(__name__)

DNS_MARKERS = ("NameResolutionError", "Name or service not known", "getaddrinfo")


def empty_response() -> Dict[str, Any]:
    """Shape of a successful search that found nothing."""
    return {"requestedFlightSegmentList": [{"flightList": []}]}


def _translate(exc: requests.RequestException) -> UpstreamError:
    """Map a transport exception to an ``UpstreamError`` code."""
    if isinstance(exc, requests.Timeout):
        code = "timeout"
    elif isinstance(exc, requests.ConnectionError):
        text = str(exc)
        if any(marker in text for marker in DNS_MARKERS):
            code = "dns_failure"
        else:
            code = "connection_reset"
    elif isinstance(
        exc,
        (requests.exceptions.ChunkedEncodingError, requests.exceptions.ContentDecodingError),
    ):
        code = "bad_response"
    else:
        code = type(exc).__name__
    return UpstreamError(str(exc), code=code)


class SmilesFetcher:
    """
    Klient API wyszukiwarki Smiles (lista lotów + opłaty lotniskowe).
    """

    def __init__(
        self,
        settings: Settings,
        identity: Optional[IdentityProvider] = None,
        *,
        attempts: int = MAX_ATTEMPTS,
    ) -> None:
        self.search_url = settings.search_url.rstrip("/")
        self.tax_url = settings.tax_url.rstrip("/")
        self.api_key = settings.api_key
        self.currency = settings.currency
        self.region_code = settings.region_code
        self.timeout = settings.request_timeout_s
        self.retry_delay = settings.retry_delay_s
        self.attempts = attempts
        self.identity = identity or RandomIdentityProvider(
            settings.auth_tokens, settings.user_agents
        )

    # ──────────────────────────────────────────────────────────

    def fetch(self, params: ParameterSet) -> Dict[str, Any]:
        """Return the flight list for one parameter set, never raising."""
        label = params.describe()
        try:
            return call_with_retry(
                lambda: self._search(params),
                label=label,
                attempts=self.attempts,
                delay=self.retry_delay,
            )
        except UpstreamError as exc:
            logger.error(
                "could not get flight %s: code=%s status=%s %s",
                label,
                exc.code,
                exc.status,
                exc,
            )
            return empty_response()

    def fetch_tax(
        self, flight_uid: str, fare_uid: str, smiles_and_money: bool = False
    ) -> Optional[TaxQuote]:
        """Return the boarding tax of a flight or ``None`` if it is unavailable."""
        params = {
            "adults": "1",
            "children": "0",
            "infants": "0",
            "fareuid": fare_uid,
            "uid": flight_uid,
            "type": "SEGMENT_1",
            "highlightText": "SMILES_MONEY_CLUB" if smiles_and_money else "SMILES_CLUB",
        }
        try:
            return call_with_retry(
                lambda: self._to_tax(self._get(f"{self.tax_url}/boardingtax", params)),
                label=f"tax {flight_uid}",
                attempts=self.attempts,
                delay=self.retry_delay,
            )
        except UpstreamError as exc:
            logger.warning("could not get tax of %s: %s", flight_uid, exc)
            return None

    # ──────────────────────────────────────────────────────────

    def _search(self, params: ParameterSet) -> Dict[str, Any]:
        data = self._get(
            f"{self.search_url}/search",
            params.to_query(self.currency, self.region_code),
        )
        segments = data.get("requestedFlightSegmentList")
        if not segments or "flightList" not in (segments[0] or {}):
            raise UpstreamError(
                "response without flightList", code="bad_response", body=data
            )
        return data

    def _get(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        headers = build_headers(self.identity.identity(), self.api_key)
        try:
            resp = requests.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise _translate(exc) from exc

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.status_code != 200:
            raise UpstreamError(
                f"HTTP {resp.status_code} – {resp.text[:120]}",
                code=f"http_{resp.status_code}",
                status=resp.status_code,
                body=body,
            )
        if not isinstance(body, dict):
            raise UpstreamError("malformed JSON body", code="bad_response")
        if body.get("error"):
            raise UpstreamError(
                f"API error: {body.get('error')}", code="api_error", body=body
            )
        return body

    @staticmethod
    def _to_tax(data: Dict[str, Any]) -> TaxQuote:
        total = (data.get("totals") or {}).get("totalBoardingTax") or {}
        miles = total.get("miles")
        money = total.get("money")
        if miles is None or money is None:
            raise UpstreamError("tax response without totals", code="bad_response")
        try:
            miles_number, money_number = int(miles), float(money)
        except (TypeError, ValueError) as exc:
            raise UpstreamError(
                f"malformed tax totals: {exc}", code="bad_response", body=data
            ) from exc
        return TaxQuote(
            miles=f"{miles_number // 1000}K",
            miles_number=miles_number,
            money=f"${int(money_number) // 1000}K",
            money_number=money_number,
        )


__all__ = ["SmilesFetcher", "empty_response"]
