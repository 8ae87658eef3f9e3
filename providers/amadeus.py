"""
providers/amadeus.py

Amadeus Self-Service flight offers client:
- OAuth client-credentials token, cached on the client until shortly before expiry
- GET /v2/shopping/flight-offers for one date pair
- Offer-to-FareOffer mapping (carrier, stops per direction, segment detail)
- Short-lived result cache keyed on the normalized request

Every failure is raised as ProviderTransientError or ProviderRequestError so the
selector can decide whether to skip a combination or fail the watch.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import requests

from config import (
    AMADEUS_API_KEY,
    AMADEUS_API_SECRET,
    AMADEUS_HOST,
    PROVIDER_TIMEOUT_SECONDS,
    SEARCH_CACHE_TTL_SECONDS,
)
from providers.base import (
    ProviderRequestError,
    ProviderTransientError,
    classify_http_status,
)
from schemas.search import FareOffer, FareSearchRequest, FareSegment

logger = logging.getLogger(__name__)

# Refresh the token this many seconds before Amadeus says it expires
_TOKEN_SAFETY_MARGIN_SECONDS = 60


# =====================================================================
# SECTION: OFFER MAPPING
# =====================================================================

def _segments_for(itinerary: dict, direction: str) -> List[FareSegment]:
    out: List[FareSegment] = []
    for seg in itinerary.get("segments", []) or []:
        dep = seg.get("departure", {}) or {}
        arr = seg.get("arrival", {}) or {}
        carrier = seg.get("carrierCode")
        number = seg.get("number")
        out.append(FareSegment(
            direction=direction,
            carrier=carrier,
            flightNumber=f"{carrier}{number}" if carrier and number else number,
            origin=dep.get("iataCode"),
            destination=arr.get("iataCode"),
            departingAt=dep.get("at"),
            arrivingAt=arr.get("at"),
        ))
    return out


def map_amadeus_offer(offer: dict, request: FareSearchRequest) -> FareOffer:
    """
    PRICE CONTRACT:
    - Amadeus price.grandTotal / price.total is TOTAL for all passengers
    - FareOffer.total is TOTAL for all passengers
    """
    price = offer.get("price", {}) or {}
    total_raw = price.get("grandTotal") or price.get("total") or 0
    total = round(float(total_raw), 2)

    itineraries = offer.get("itineraries", []) or []
    if not itineraries:
        raise ValueError("offer has no itineraries")

    outbound = _segments_for(itineraries[0], "outbound")
    inbound = _segments_for(itineraries[1], "return") if len(itineraries) > 1 else []

    carrier = None
    validating = offer.get("validatingAirlineCodes") or []
    if validating:
        carrier = validating[0]
    if not carrier and outbound:
        carrier = outbound[0].carrier

    return FareOffer(
        id=str(offer.get("id", "")),
        provider="amadeus",
        total=total,
        currency=price.get("currency") or request.currency,
        carrier=carrier or "UNKNOWN",
        stopsOut=max(0, len(outbound) - 1),
        stopsBack=max(0, len(inbound) - 1) if len(itineraries) > 1 else None,
        depart=request.departDate,
        returnDate=request.returnDate,
        segments=outbound + inbound,
    )


# =====================================================================
# SECTION: CLIENT
# =====================================================================

class AmadeusClient:
    name = "amadeus"

    def __init__(
        self,
        api_key: str = AMADEUS_API_KEY,
        api_secret: str = AMADEUS_API_SECRET,
        host: str = AMADEUS_HOST,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
        cache_ttl: int = SEARCH_CACHE_TTL_SECONDS,
        session: Optional[requests.Session] = None,
        clock=time.monotonic,
    ):
        self.api_key = api_key
        self.api_secret = api_secret
        self.host = host.rstrip("/")
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self.http = session or requests.Session()
        self._clock = clock

        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._results: Dict[str, Tuple[float, List[FareOffer]]] = {}

    # ---- token ----

    def _get_token(self) -> str:
        now = self._clock()
        if self._token and self._token_expires_at > now:
            return self._token

        if not (self.api_key and self.api_secret):
            raise ProviderRequestError("AMADEUS_API_KEY and AMADEUS_API_SECRET are not configured", provider=self.name)

        try:
            resp = self.http.post(
                f"{self.host}/v1/security/oauth2/token",
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.api_key,
                    "client_secret": self.api_secret,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            self._token = None
            raise ProviderTransientError(f"Amadeus token request failed: {e}", provider=self.name)

        if resp.status_code >= 400:
            self._token = None
            error_cls = classify_http_status(resp.status_code)
            raise error_cls(
                f"Amadeus token request failed: {resp.status_code} {(resp.text or '')[:200]}",
                status_code=resp.status_code,
                provider=self.name,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderTransientError(f"Amadeus token response is not JSON: {e}", provider=self.name)

        if not isinstance(data, dict):
            raise ProviderTransientError("Invalid token response: expected an object", provider=self.name)
        token = data.get("access_token")
        expires_in = data.get("expires_in")
        if not token or not expires_in:
            raise ProviderTransientError("Invalid token response: missing access_token or expires_in", provider=self.name)

        self._token = token
        self._token_expires_at = now + max(0, int(expires_in) - _TOKEN_SAFETY_MARGIN_SECONDS)
        logger.info(f"[amadeus] new token expires_in={int(expires_in)}s")
        return token

    # ---- cache ----

    def _cached(self, key: str) -> Optional[List[FareOffer]]:
        entry = self._results.get(key)
        if not entry:
            return None
        expires_at, offers = entry
        if expires_at <= self._clock():
            self._results.pop(key, None)
            return None
        return offers

    def _store(self, key: str, offers: List[FareOffer]) -> None:
        now = self._clock()
        expired = [k for k, (expires_at, _) in self._results.items() if expires_at <= now]
        for k in expired:
            del self._results[k]
        self._results[key] = (now + self.cache_ttl, offers)

    def clear_cache(self) -> None:
        self._token = None
        self._token_expires_at = 0.0
        self._results.clear()

    # ---- search ----

    def _build_params(self, request: FareSearchRequest) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "originLocationCode": request.origin,
            "destinationLocationCode": request.destination,
            "departureDate": request.departDate.isoformat(),
            "adults": request.adults,
            "travelClass": request.cabinClass.value,
            "currencyCode": request.currency,
            "max": request.maxResults,
        }
        if request.returnDate:
            params["returnDate"] = request.returnDate.isoformat()
        if request.children:
            params["children"] = request.children
        if request.infants:
            params["infants"] = request.infants
        return params

    def search(self, request: FareSearchRequest) -> List[FareOffer]:
        key = request.cache_key()
        cached = self._cached(key)
        if cached is not None:
            logger.debug(f"[amadeus] cache hit key={key}")
            return cached

        token = self._get_token()
        try:
            resp = self.http.get(
                f"{self.host}/v2/shopping/flight-offers",
                params=self._build_params(request),
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ProviderTransientError(f"Amadeus flight search failed: {e}", provider=self.name)

        if resp.status_code == 401:
            # Token revoked early, force a refresh next call
            self._token = None

        if resp.status_code >= 400:
            error_cls = classify_http_status(resp.status_code)
            safe_body = (resp.text or "").replace("\n", "\\n")[:300]
            logger.warning(
                f"[amadeus] search status={resp.status_code} "
                f"{request.origin}->{request.destination} dep={request.departDate} body={safe_body}"
            )
            raise error_cls(
                f"Amadeus flight search failed: {resp.status_code}",
                status_code=resp.status_code,
                provider=self.name,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderTransientError(f"Amadeus returned invalid JSON: {e}", provider=self.name)

        raw_offers = data.get("data") if isinstance(data, dict) else None
        if not isinstance(raw_offers, list):
            logger.warning("[amadeus] unexpected response format, treating as empty")
            raw_offers = []

        offers: List[FareOffer] = []
        for raw in raw_offers:
            try:
                offers.append(map_amadeus_offer(raw, request))
            except (ValueError, TypeError) as e:
                logger.warning(f"[amadeus] map error offer_id={raw.get('id') if isinstance(raw, dict) else None}: {e}")

        self._store(key, offers)
        logger.info(
            f"[amadeus] search {request.origin}->{request.destination} "
            f"dep={request.departDate} ret={request.returnDate} offers={len(offers)}"
        )
        return offers

