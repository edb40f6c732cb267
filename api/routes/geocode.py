# SPDX-License-Identifier: Apache-2.0

"""
Address lookup endpoints backed by the geocoding service.
"""

from flask import current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag

from models.requests import GeocodeSearchQuery, ReverseGeocodeQuery
from services.geocode import GeocodeService

geocode_tag = Tag(name="Geocode", description="Address lookup")
geocode_bp = APIBlueprint('geocode', __name__, url_prefix='/api/geocode', abp_tags=[geocode_tag])


def _geocoder() -> GeocodeService:
    return current_app.extensions['geocoder']


@geocode_bp.get('/reverse')
def reverse_geocode(query: ReverseGeocodeQuery):
    """Resolve coordinates to an address."""
    return jsonify(_geocoder().reverse(query.lat, query.lng).model_dump())


@geocode_bp.get('/search')
def search_address(query: GeocodeSearchQuery):
    results = _geocoder().search(query.q, limit=query.limit)
    return jsonify({"items": [result.model_dump() for result in results]})
