"""
providers/factory.py

Builds the fare search provider selected by the FLIGHT_PROVIDER env var.

Currently supported values:
  amadeus: Amadeus Self-Service flight offers (default)
  duffel:  Duffel offer requests

To switch providers without code changes:
  FLIGHT_PROVIDER=duffel
"""

import logging
from typing import Optional

from config import FLIGHT_PROVIDER
from providers.base import FareSearchProvider

logger = logging.getLogger(__name__)


def build_provider(name: Optional[str] = None) -> FareSearchProvider:
    provider = (name or FLIGHT_PROVIDER or "amadeus").lower().strip()

    if provider == "duffel":
        from providers.duffel import DuffelClient
        return DuffelClient()

    if provider != "amadeus":
        logger.warning(f"[factory] unknown FLIGHT_PROVIDER={provider}, falling back to amadeus")

    from providers.amadeus import AmadeusClient
    return AmadeusClient()
