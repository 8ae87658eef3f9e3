"""
services/offer_selector.py

Runs the fare provider over every date combination of one watch and reduces
everything it returns to the single cheapest itinerary within the watch's
stop ceiling.

Failure policy:
  - One combination failing (timeout, 5xx, 429, bad date) is logged and skipped.
  - Every combination failing with the same hard provider error raises
    ProviderTotalFailure so the trigger can report ERROR instead of NOOP.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from config import SEARCH_MAX_RESULTS
from providers.base import (
    FareSearchError,
    FareSearchProvider,
    ProviderRequestError,
    ProviderTotalFailure,
)
from schemas.search import BestOffer, DateCombination, FareOffer, FareSearchRequest
from schemas.watches import WatchRecord

logger = logging.getLogger(__name__)


@dataclass
class SelectionResult:
    best: Optional[BestOffer] = None
    searched: int = 0
    failed: int = 0
    offers_seen: int = 0
    errors: List[FareSearchError] = field(default_factory=list)


def build_search_request(watch: WatchRecord, combo: DateCombination) -> FareSearchRequest:
    return FareSearchRequest(
        origin=watch.origin,
        destination=watch.destination,
        departDate=combo.depart,
        returnDate=combo.returnDate,
        adults=watch.adults,
        children=watch.children,
        infants=watch.infants,
        cabinClass=watch.cabin,
        currency=watch.currency,
        maxResults=SEARCH_MAX_RESULTS,
    )


def within_stop_ceiling(offer: FareOffer, max_stops: int) -> bool:
    if offer.stopsOut > max_stops:
        return False
    if offer.stopsBack is not None and offer.stopsBack > max_stops:
        return False
    return True


def _all_same_hard_error(errors: List[FareSearchError]) -> bool:
    if not errors:
        return False
    if not all(isinstance(e, ProviderRequestError) for e in errors):
        return False
    return len({e.signature for e in errors}) == 1


def select_best(
    provider: FareSearchProvider,
    watch: WatchRecord,
    combinations: List[DateCombination],
) -> SelectionResult:
    result = SelectionResult()
    best_key = None

    for combo in combinations:
        request = build_search_request(watch, combo)
        result.searched += 1
        try:
            offers = provider.search(request) or []
        except FareSearchError as e:
            result.failed += 1
            result.errors.append(e)
            logger.warning(f"[selector] search failed watch_id={watch.id} dates={combo.label()} error={e}")
            continue

        result.offers_seen += len(offers)
        for offer in offers:
            if not within_stop_ceiling(offer, watch.maxStops):
                continue
            # Strict comparison keeps the first-encountered offer on a full tie
            key = (round(offer.total, 2), offer.total_stops)
            if best_key is None or key < best_key:
                best_key = key
                result.best = BestOffer(offer=offer, dates=combo)

    if result.best is None and result.searched and result.failed == result.searched:
        if _all_same_hard_error(result.errors):
            raise ProviderTotalFailure(result.errors[0], attempts=result.failed)
        logger.warning(f"[selector] all {result.failed} searches failed watch_id={watch.id}, treating as no offers")

    logger.info(
        f"[selector] watch_id={watch.id} searched={result.searched} failed={result.failed} "
        f"offers={result.offers_seen} best={result.best.offer.total if result.best else None}"
    )
    return result
