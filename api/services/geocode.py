# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Address lookup against a Nominatim compatible geocoder.
"""

import os
import logging
from typing import Any, Dict, List, Optional

import requests
from opentelemetry import trace

from models.responses import GeocodeResult
from services.errors import InternalError

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

USER_AGENT = "RescueNetwork/1.0"


class GeocodeService:
    """Stateless reverse geocoding and address search."""

    def __init__(self, base_url: Optional[str] = None, timeout: float = 10.0,
                 http: Optional[requests.Session] = None):
        self.base_url = (base_url or os.getenv('NOMINATIM_URL', 'https://nominatim.openstreetmap.org')).rstrip('/')
        self.timeout = timeout
        self.http = http or requests.Session()

    def _get(self, path: str, params: Dict[str, Any]) -> Any:
        try:
            response = self.http.get(
                f"{self.base_url}{path}",
                params={"format": "json", **params},
                headers={"User-Agent": USER_AGENT},
                timeout=self.timeout
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Geocoder request to {path} failed: {e}")
            raise InternalError("GEOCODE_ERROR", "Address lookup failed") from e

    def reverse(self, latitude: float, longitude: float) -> GeocodeResult:
        """
        Resolve coordinates to an address.

        Args:
            latitude: Latitude in degrees
            longitude: Longitude in degrees

        Returns:
            GeocodeResult echoing the queried coordinates
        """
        with tracer.start_as_current_span("geocode.reverse"):
            body = self._get("/reverse", {"lat": latitude, "lon": longitude, "addressdetails": 1})

        if not isinstance(body, dict) or "error" in body:
            raise InternalError("GEOCODE_ERROR", "No address found for these coordinates")

        return GeocodeResult(
            address=body.get("display_name", ""),
            latitude=latitude,
            longitude=longitude,
            place_id=str(body["place_id"]) if body.get("place_id") is not None else None,
            place_type=body.get("type"),
            components={k: str(v) for k, v in (body.get("address") or {}).items()}
        )

    def search(self, query: str, limit: int = 10) -> List[GeocodeResult]:
        """Find addresses matching free text."""
        with tracer.start_as_current_span("geocode.search") as span:
            body = self._get("/search", {"q": query, "limit": limit})
            span.set_attribute("geocode.results", len(body) if isinstance(body, list) else 0)

        results = []
        for item in body if isinstance(body, list) else []:
            try:
                latitude, longitude = float(item["lat"]), float(item["lon"])
            except (KeyError, TypeError, ValueError):
                logger.debug(f"Skipping geocoder result without coordinates: {item.get('place_id')}")
                continue
            results.append(GeocodeResult(
                address=item.get("display_name", ""),
                latitude=latitude,
                longitude=longitude,
                place_id=str(item["place_id"]) if item.get("place_id") is not None else None,
                place_type=item.get("type")
            ))
        return results
