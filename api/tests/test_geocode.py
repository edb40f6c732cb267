# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the geocoding service and endpoints.
"""

import pytest
import requests
from unittest.mock import Mock

from models.responses import GeocodeResult
from services.errors import InternalError
from services.geocode import GeocodeService


class TestGeocodeService:
    """Nominatim client with a mocked HTTP session."""

    def setup_method(self):
        self.http = Mock()
        self.service = GeocodeService(base_url="https://geo.example.org/", http=self.http)

    def test_reverse(self):
        self.http.get.return_value.json.return_value = {
            "place_id": 123,
            "display_name": "1 Nguyen Hue, District 1",
            "type": "house",
            "address": {"road": "Nguyen Hue", "postcode": 700000}
        }

        result = self.service.reverse(10.77, 106.70)

        assert result.address == "1 Nguyen Hue, District 1"
        assert result.place_id == "123"
        assert result.components == {"road": "Nguyen Hue", "postcode": "700000"}
        url = self.http.get.call_args[0][0]
        params = self.http.get.call_args.kwargs["params"]
        assert url == "https://geo.example.org/reverse"
        assert params["lat"] == 10.77 and params["lon"] == 106.70
        assert params["format"] == "json"

    def test_reverse_without_match(self):
        self.http.get.return_value.json.return_value = {"error": "Unable to geocode"}

        with pytest.raises(InternalError) as exc_info:
            self.service.reverse(0.0, 0.0)

        assert exc_info.value.code == "GEOCODE_ERROR"

    def test_http_failure(self):
        self.http.get.side_effect = requests.Timeout("slow")

        with pytest.raises(InternalError) as exc_info:
            self.service.search("Ben Thanh market")

        assert exc_info.value.code == "GEOCODE_ERROR"

    def test_search_skips_results_without_coordinates(self):
        self.http.get.return_value.json.return_value = [
            {"place_id": 1, "display_name": "Ben Thanh Market", "lat": "10.772", "lon": "106.698"},
            {"place_id": 2, "display_name": "Broken"},
        ]

        results = self.service.search("Ben Thanh", limit=2)

        assert [r.address for r in results] == ["Ben Thanh Market"]
        assert results[0].latitude == pytest.approx(10.772)


class TestGeocodeEndpoints:
    """Routes delegate to the injected geocoder."""

    def test_reverse_endpoint(self, client, geocoder):
        geocoder.reverse.return_value = GeocodeResult(address="Somewhere", latitude=1.0, longitude=2.0)

        response = client.get('/api/geocode/reverse?lat=1.0&lng=2.0')

        assert response.status_code == 200
        assert response.get_json()["address"] == "Somewhere"
        geocoder.reverse.assert_called_once_with(1.0, 2.0)

    def test_reverse_rejects_bad_coordinates(self, client):
        response = client.get('/api/geocode/reverse?lat=100&lng=2.0')

        assert response.status_code == 422

    def test_geocoder_failure_is_problem(self, client, geocoder):
        geocoder.search.side_effect = InternalError("GEOCODE_ERROR", "Address lookup failed")

        response = client.get('/api/geocode/search?q=market')

        assert response.status_code == 500
        assert response.get_json()["code"] == "GEOCODE_ERROR"
