"""
providers/duffel.py

Duffel API helpers:
- Low-level HTTP wrappers (post, get)
- Offer request creation for one-way or round-trip slices
- Offer listing
- Offer-to-FareOffer mapping

Used when FLIGHT_PROVIDER=duffel.
"""

import logging
import time
from typing import Any, Dict, List, Optional

import requests

from config import DUFFEL_API_BASE, DUFFEL_API_TOKEN, PROVIDER_TIMEOUT_SECONDS
from providers.base import ProviderRequestError, ProviderTransientError, classify_http_status
from schemas.search import FareOffer, FareSearchRequest, FareSegment

logger = logging.getLogger(__name__)

_DUFFEL_CABIN = {
    "ECONOMY": "economy",
    "PREMIUM_ECONOMY": "premium_economy",
    "BUSINESS": "business",
    "FIRST": "first",
}


# =====================================================================
# SECTION: OFFER MAPPING
# =====================================================================

def _map_segments(direction: str, seg_list: List[dict]) -> List[FareSegment]:
    result: List[FareSegment] = []
    for seg in seg_list:
        o = seg.get("origin", {}) or {}
        d = seg.get("destination", {}) or {}
        carrier = (seg.get("marketing_carrier") or {}).get("iata_code")
        number = seg.get("marketing_carrier_flight_number")
        result.append(FareSegment(
            direction=direction,
            carrier=carrier,
            flightNumber=f"{carrier}{number}" if carrier and number else number,
            origin=o.get("iata_code"),
            destination=d.get("iata_code"),
            departingAt=seg.get("departing_at"),
            arrivingAt=seg.get("arriving_at"),
        ))
    return result


def map_duffel_offer(offer: dict, request: FareSearchRequest) -> FareOffer:
    """
    PRICE CONTRACT:
    - Duffel offer.total_amount is TOTAL for all passengers
    - FareOffer.total is TOTAL for all passengers
    """
    slices = offer.get("slices", []) or []
    if not slices:
        raise ValueError("offer has no slices")

    outbound_json = slices[0].get("segments", []) or []
    return_json = (slices[1].get("segments", []) or []) if len(slices) >= 2 else []

    owner = offer.get("owner", {}) or {}
    carrier = owner.get("iata_code")
    if not carrier and outbound_json:
        carrier = (outbound_json[0].get("marketing_carrier") or {}).get("iata_code")

    return FareOffer(
        id=str(offer.get("id", "")),
        provider="duffel",
        total=round(float(offer.get("total_amount", 0) or 0), 2),
        currency=offer.get("total_currency") or request.currency,
        carrier=carrier or "UNKNOWN",
        stopsOut=max(0, len(outbound_json) - 1),
        stopsBack=max(0, len(return_json) - 1) if len(slices) >= 2 else None,
        depart=request.departDate,
        returnDate=request.returnDate,
        segments=_map_segments("outbound", outbound_json) + _map_segments("return", return_json),
    )


# =====================================================================
# SECTION: CLIENT
# =====================================================================

class DuffelClient:
    name = "duffel"

    def __init__(
        self,
        token: str = DUFFEL_API_TOKEN,
        base_url: str = DUFFEL_API_BASE,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
        retry_delay: float = 1.5,
    ):
        self.token = (token or "").strip()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()
        self.retry_delay = retry_delay

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            raise ProviderRequestError("Duffel token is not configured", provider=self.name)
        return {
            "Authorization": f"Bearer {self.token}",
            "Duffel-Version": "v2",
            "Content-Type": "application/json",
        }

    def _handle(self, method: str, path: str, resp: requests.Response) -> Any:
        try:
            data = resp.json()
        except ValueError:
            data = {"raw": resp.text}

        request_id = resp.headers.get("Request-Id") or resp.headers.get("X-Request-Id")
        if resp.status_code >= 400:
            safe_body = (resp.text or "").replace("\n", "\\n").replace("\r", "\\r")
            logger.warning(f"[duffel] {method} {path} status={resp.status_code} request_id={request_id} body={safe_body[:1200]}")
            error_cls = classify_http_status(resp.status_code)
            raise error_cls(
                f"Duffel {method} {path} failed: {resp.status_code}",
                status_code=resp.status_code,
                provider=self.name,
            )

        logger.debug(f"[duffel] {method} {path} status={resp.status_code} request_id={request_id}")
        if isinstance(data, dict) and "data" in data:
            return data["data"]
        return data

    def post(self, path: str, payload: dict) -> Any:
        headers = self._headers()
        try:
            resp = self.http.post(self.base_url + path, headers=headers, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise ProviderTransientError(f"Duffel request failed: {e}", provider=self.name)
        return self._handle("POST", path, resp)

    def get(self, path: str, params: Optional[dict] = None) -> Any:
        headers = self._headers()
        try:
            resp = self.http.get(self.base_url + path, headers=headers, params=params or {}, timeout=self.timeout)
        except requests.RequestException as e:
            raise ProviderTransientError(f"Duffel request failed: {e}", provider=self.name)
        return self._handle("GET", path, resp)

    def list_offers(self, offer_request_id: str, limit: int) -> List[dict]:
        res = self.get("/air/offers", params={"offer_request_id": offer_request_id, "limit": int(limit)})
        if isinstance(res, list):
            return res
        return []

    def search(self, request: FareSearchRequest) -> List[FareOffer]:
        slices = [{
            "origin": request.origin,
            "destination": request.destination,
            "departure_date": request.departDate.isoformat(),
        }]
        if request.returnDate:
            slices.append({
                "origin": request.destination,
                "destination": request.origin,
                "departure_date": request.returnDate.isoformat(),
            })

        passengers = (
            [{"type": "adult"} for _ in range(request.adults)]
            + [{"age": 10} for _ in range(request.children)]
            + [{"type": "infant_without_seat"} for _ in range(request.infants)]
        )

        payload = {
            "data": {
                "slices": slices,
                "passengers": passengers,
                "cabin_class": _DUFFEL_CABIN[request.cabinClass.value],
            }
        }

        data = self.post("/air/offer_requests", payload)
        offer_request_id = data.get("id") if isinstance(data, dict) else None
        if not offer_request_id:
            raise ProviderTransientError("Duffel returned no offer_request_id", provider=self.name)

        offers_json = self.list_offers(offer_request_id, limit=request.maxResults)
        if not offers_json and self.retry_delay:
            time.sleep(self.retry_delay)
            offers_json = self.list_offers(offer_request_id, limit=request.maxResults)

        results: List[FareOffer] = []
        skipped_currency = 0
        for offer in offers_json:
            try:
                mapped = map_duffel_offer(offer, request)
            except (ValueError, TypeError) as e:
                logger.warning(f"[duffel] map error offer_id={offer.get('id')}: {e}")
                continue
            # Duffel prices in the account currency; totals are compared against USD targets
            if mapped.currency.upper() != request.currency.upper():
                skipped_currency += 1
                continue
            results.append(mapped)

        if skipped_currency:
            logger.warning(
                f"[duffel] dropped {skipped_currency} offers not priced in {request.currency} "
                f"{request.origin}->{request.destination} dep={request.departDate}"
            )

        logger.info(
            f"[duffel] search {request.origin}->{request.destination} "
            f"dep={request.departDate} ret={request.returnDate} offers={len(results)}"
        )
        return results
