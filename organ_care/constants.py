from typing import Dict, List, Optional

ADMS: List[str] = [
    "ADM Campinas",
    "ADM Jundiaí",
    "ADM Piracicaba",
    "ADM Sorocaba",
]

INITIAL_LOCATIONS: List[Dict[str, str]] = [
    {"id": "cps-central", "name": "Campinas - Central", "adm": "ADM Campinas"},
    {"id": "cps-taquaral", "name": "Campinas - Taquaral", "adm": "ADM Campinas"},
    {"id": "cps-cambui", "name": "Campinas - Cambuí", "adm": "ADM Campinas"},
    {"id": "jdi-centro", "name": "Jundiaí - Centro", "adm": "ADM Jundiaí"},
    {"id": "jdi-anhangabau", "name": "Jundiaí - Anhangabaú", "adm": "ADM Jundiaí"},
    {"id": "pir-centro", "name": "Piracicaba - Centro", "adm": "ADM Piracicaba"},
    {"id": "pir-vila-rezende", "name": "Piracicaba - Vila Rezende", "adm": "ADM Piracicaba"},
    {"id": "sor-centro", "name": "Sorocaba - Centro", "adm": "ADM Sorocaba"},
    {"id": "sor-eden", "name": "Sorocaba - Éden", "adm": "ADM Sorocaba"},
]

MAX_PHOTOS = 10
MAX_TECHNICIANS = 2


def find_location(location_id: Optional[str], locations: List[Dict[str, str]] = INITIAL_LOCATIONS) -> Optional[Dict[str, str]]:
    for loc in locations:
        if loc["id"] == location_id:
            return loc
    return None
