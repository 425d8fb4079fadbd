"""View routing state.

One immutable value per session; every transition returns a new value.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional


class View(str, Enum):
    HOME = "home"
    ADM_DETAIL = "adm-detail"
    LOCATION_DETAIL = "location-detail"
    REGISTER_ORGAN = "register-organ"
    EDIT_ORGAN = "edit-organ"
    REGISTER_MAINTENANCE = "register-maintenance"
    EDIT_MAINTENANCE = "edit-maintenance"
    REPORTS = "reports"


@dataclass(frozen=True)
class NavigationState:
    view: View = View.HOME
    adm: Optional[str] = None
    location_id: Optional[str] = None
    organ_id: Optional[str] = None
    maintenance_id: Optional[str] = None

    def go_home(self) -> "NavigationState":
        return NavigationState()

    def open_adm(self, adm: str) -> "NavigationState":
        return replace(self, view=View.ADM_DETAIL, adm=adm, location_id=None, organ_id=None)

    def open_location(self, location_id: str) -> "NavigationState":
        return replace(self, view=View.LOCATION_DETAIL, location_id=location_id, organ_id=None)

    def back_to_location(self) -> "NavigationState":
        return replace(self, view=View.LOCATION_DETAIL, organ_id=None)

    def register_organ(self) -> "NavigationState":
        return replace(self, view=View.REGISTER_ORGAN)

    def edit_organ(self, organ_id: str) -> "NavigationState":
        return replace(self, view=View.EDIT_ORGAN, organ_id=organ_id)

    def register_maintenance(self, organ_id: str) -> "NavigationState":
        return replace(self, view=View.REGISTER_MAINTENANCE, organ_id=organ_id)

    def edit_maintenance(self, maintenance_id: str) -> "NavigationState":
        return replace(self, view=View.EDIT_MAINTENANCE, maintenance_id=maintenance_id)

    def open_reports(self) -> "NavigationState":
        return replace(self, view=View.REPORTS)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "view": self.view.value,
            "adm": self.adm,
            "locationId": self.location_id,
            "organId": self.organ_id,
            "maintenanceId": self.maintenance_id,
        }


INTENTS = {
    "home": lambda s, p: s.go_home(),
    "adm": lambda s, p: s.open_adm(p["adm"]),
    "location": lambda s, p: s.open_location(p["locationId"]),
    "register-organ": lambda s, p: s.register_organ(),
    "register-maintenance": lambda s, p: s.register_maintenance(p["organId"]),
    "reports": lambda s, p: s.open_reports(),
    "back": lambda s, p: s.back_to_location(),
}


def apply_intent(state: NavigationState, intent: str, payload: Dict[str, Any]) -> NavigationState:
    """Apply a caller intent; edit views are only reachable through the passcode gate."""
    try:
        transition = INTENTS[intent]
    except KeyError:
        raise ValueError(f"Intenção desconhecida: {intent}")
    try:
        return transition(state, payload)
    except KeyError as e:
        raise ValueError(f"Campo obrigatório ausente: {e.args[0]}")
