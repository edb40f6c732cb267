# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response serialization helpers shared by the route modules.
"""

from typing import Any, Dict, List, Sequence, Tuple

from pydantic import BaseModel

from models.entities import Case
from services.storage import PaginationResult


def to_api(entity: BaseModel) -> Dict[str, Any]:
    """Serialize an entity to JSON-safe camelCase keys."""
    return entity.model_dump(mode="json", by_alias=True)


def to_api_list(entities: Sequence[BaseModel]) -> List[Dict[str, Any]]:
    return [to_api(entity) for entity in entities]


def page_to_api(result: PaginationResult) -> Dict[str, Any]:
    return result.to_dict(to_api)


def nearby_to_api(ranked: Sequence[Tuple[Case, float]]) -> List[Dict[str, Any]]:
    return [
        {"case": to_api(case), "distanceKm": round(distance, 2)}
        for case, distance in ranked
    ]
