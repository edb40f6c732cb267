# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response models for external lookups and read-only summaries.
"""

from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class GeocodeResult(BaseModel):
    """Normalized geocoder answer."""

    address: str = Field(..., description="Display address")
    latitude: float
    longitude: float
    place_id: Optional[str] = None
    place_type: Optional[str] = None
    components: Dict[str, str] = Field(default_factory=dict, description="Structured address parts")


class UserStats(BaseModel):
    """Participation summary of a user."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    cases_reported: int = 0
    cases_accepted: int = 0
    cases_completed: int = 0
    cases_in_progress: int = 0
