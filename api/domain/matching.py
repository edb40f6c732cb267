# SPDX-License-Identifier: Apache-2.0

"""
Volunteer matching and nearby case ranking.

The matcher narrows candidates with a bounding box query, then applies each
volunteer's own radius, case type, push and quiet hours preferences.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, time, timezone, tzinfo
from typing import Callable, Iterable, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from opentelemetry import trace

from models.base import utc_now
from models.entities import Case, GeoPoint, VolunteerPreferences, VolunteerProfile
from domain.cases import is_active, urgency_priority
from domain.geo import bounding_box, distance_km

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class MatchingConfig:
    """Matching engine settings."""
    scan_radius_km: float = 100.0
    default_radius_km: float = 10.0
    limit: int = 100
    quiet_hours_tz: str = "UTC"

    @classmethod
    def from_env(cls) -> "MatchingConfig":
        return cls(
            scan_radius_km=float(os.getenv('MATCH_SCAN_RADIUS_KM', '100')),
            default_radius_km=float(os.getenv('MATCH_DEFAULT_RADIUS_KM', '10')),
            limit=int(os.getenv('MATCH_LIMIT', '100')),
            quiet_hours_tz=os.getenv('QUIET_HOURS_TZ', 'UTC'),
        )

    def timezone(self) -> tzinfo:
        if self.quiet_hours_tz.upper() == "UTC":
            return timezone.utc
        return ZoneInfo(self.quiet_hours_tz)


@dataclass
class VolunteerMatch:
    """An eligible volunteer and their distance from the case."""
    volunteer: VolunteerProfile
    distance_km: float

    @property
    def volunteer_id(self) -> str:
        return self.volunteer.id


def _parse_clock(value: Optional[str]) -> Optional[time]:
    if not value:
        return None
    try:
        hours, minutes = value.split(":")
        return time(int(hours), int(minutes))
    except ValueError:
        return None


def in_quiet_hours(preferences: VolunteerPreferences, local_time: time) -> bool:
    """
    Check whether a local time of day falls in the volunteer's quiet window.

    The window is [start, end). A start later than the end wraps past
    midnight. Equal, missing or unparsable bounds disable the window.
    """
    start = _parse_clock(preferences.quiet_hours_start)
    end = _parse_clock(preferences.quiet_hours_end)
    if start is None or end is None or start == end:
        return False

    current = local_time.replace(second=0, microsecond=0, tzinfo=None)
    if start < end:
        return start <= current < end
    return current >= start or current < end


class VolunteerMatcher:
    """Find the volunteers who should hear about a new case."""

    def __init__(self, store, config: Optional[MatchingConfig] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.config = config or MatchingConfig()
        self.clock = clock
        self._tz = self.config.timezone()

    def match(
        self,
        location: GeoPoint,
        case_type: str,
        urgency: str,
        limit: Optional[int] = None,
        exclude_user_ids: Iterable[str] = ()
    ) -> List[VolunteerMatch]:
        """
        Rank eligible volunteers for a case.

        Args:
            location: Case location
            case_type: Case type the volunteer must accept
            urgency: Case urgency, recorded for tracing only
            limit: Maximum number of matches, defaults to the configured cap
            exclude_user_ids: Users never to match, such as the reporter

        Returns:
            Matches sorted by ascending distance
        """
        limit = limit or self.config.limit
        excluded = set(exclude_user_ids)

        with tracer.start_as_current_span("matcher.match") as span:
            box = bounding_box(location, self.config.scan_radius_km)
            candidates = self.store.find_volunteers_in_box(box)
            local_now = self.clock().astimezone(self._tz).time()

            matches = []
            for volunteer in candidates:
                if volunteer.id in excluded:
                    continue
                match = self._evaluate(volunteer, location, case_type, local_now)
                if match is not None:
                    matches.append(match)

            matches.sort(key=lambda m: m.distance_km)
            matches = matches[:limit]

            span.set_attributes({
                "match.case_type": str(case_type),
                "match.urgency": str(urgency),
                "match.candidates": len(candidates),
                "match.results": len(matches)
            })
            logger.debug(
                "Volunteer matching complete",
                extra={
                    "case_type": case_type,
                    "candidates": len(candidates),
                    "matches": len(matches)
                }
            )
            return matches

    def _evaluate(self, volunteer: VolunteerProfile, location: GeoPoint,
                  case_type: str, local_now: time) -> Optional[VolunteerMatch]:
        point = volunteer.effective_location()
        if point is None:
            return None

        prefs = volunteer.preferences
        distance = distance_km(location, point)
        radius = prefs.notification_radius_km or self.config.default_radius_km
        if distance > radius:
            return None
        if not prefs.push_enabled or case_type not in prefs.case_types:
            return None
        if in_quiet_hours(prefs, local_now):
            return None
        return VolunteerMatch(volunteer=volunteer, distance_km=distance)


def rank_nearby_cases(
    center: GeoPoint,
    cases: Iterable[Case],
    radius_km: float,
    limit: int,
    types: Sequence[str] = ()
) -> List[Tuple[Case, float]]:
    """
    Order active cases around a point, most urgent first then nearest.

    Args:
        center: Caller location
        cases: Candidate cases, typically from a bounding box query
        radius_km: Caller search radius
        limit: Maximum number of results
        types: Optional case type filter

    Returns:
        List of (case, distance_km) tuples
    """
    ranked = []
    for case in cases:
        if not is_active(case.status):
            continue
        if types and case.case_type not in types:
            continue
        distance = distance_km(center, case.location)
        if distance <= radius_km:
            ranked.append((case, distance))

    ranked.sort(key=lambda item: (urgency_priority(item[0].urgency), item[1]))
    return ranked[:limit]
