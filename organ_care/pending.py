"""Maintenance-pending status for organs, locations and administrations.

Nothing here is stored: every answer is re-derived from the organ and
maintenance lists handed in, against the wall clock at the moment of the call.
"""
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from .constants import INITIAL_LOCATIONS
from .utils import parse_iso_date


def one_year_before(day: date) -> date:
    """Same month and day one year earlier; Feb 29 rolls over to Mar 1."""
    try:
        return day.replace(year=day.year - 1)
    except ValueError:
        return date(day.year - 1, 3, 1)


class PendingEvaluator:
    def __init__(
        self,
        organs: Iterable[Dict[str, Any]],
        maintenances: Iterable[Dict[str, Any]],
        locations: Iterable[Dict[str, Any]] = INITIAL_LOCATIONS,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.organs: List[Dict[str, Any]] = list(organs)
        self.maintenances: List[Dict[str, Any]] = list(maintenances)
        self.locations: List[Dict[str, Any]] = list(locations)
        self.clock = clock

    def threshold(self) -> date:
        # recomputed per call, status may flip as real time passes
        return one_year_before(self.clock().date())

    def last_service_date(self, organ_id: str) -> Optional[date]:
        dates = [parse_iso_date(m.get("date")) for m in self.maintenances if m.get("organId") == organ_id]
        dates = [d for d in dates if d is not None]
        return max(dates) if dates else None

    def is_maintenance_pending(self, organ_id: str) -> bool:
        last = self.last_service_date(organ_id)
        if last is None:
            return True
        return last < self.threshold()

    def location_organs(self, location_id: str) -> List[Dict[str, Any]]:
        return [o for o in self.organs if o.get("locationId") == location_id]

    def is_location_pending(self, location_id: str) -> bool:
        # a location without organs has nothing to be overdue about
        return any(self.is_maintenance_pending(o["id"]) for o in self.location_organs(location_id))

    def pending_count(self, location_id: str) -> int:
        return sum(1 for o in self.location_organs(location_id) if self.is_maintenance_pending(o["id"]))

    def is_adm_pending(self, adm: str) -> bool:
        return any(self.is_location_pending(loc["id"]) for loc in self.locations if loc.get("adm") == adm)
