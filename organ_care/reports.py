"""Dashboard listings, report filters and CSV export."""
from typing import Any, Dict, List, Optional

import pandas as pd

from .constants import ADMS
from .snapshot import LiveSnapshot

MAINTENANCE_CSV_COLUMNS = ["Data", "Instrumento", "Nº Patrimônio", "ADM", "Local", "Técnicos", "Ocorrência"]
DELETED_CSV_COLUMNS = ["Data Exclusão", "Tipo", "Instrumento/Info", "Nº Patrimônio", "ADM", "Local", "Motivo"]
TYPE_LABELS = {"organ": "Órgão", "maintenance": "Manutenção"}


# ---------------------- Dashboards ----------------------

def adm_overview(snapshot: LiveSnapshot) -> List[Dict[str, Any]]:
    ev = snapshot.evaluator()
    return [{"adm": adm, "pending": ev.is_adm_pending(adm)} for adm in ADMS]

def adm_locations(snapshot: LiveSnapshot, adm: str) -> List[Dict[str, Any]]:
    ev = snapshot.evaluator()
    out = []
    for loc in snapshot.locations:
        if loc["adm"] != adm:
            continue
        out.append({
            **loc,
            "organCount": len(ev.location_organs(loc["id"])),
            "pending": ev.is_location_pending(loc["id"]),
        })
    return out

def _matches_search(organ: Dict[str, Any], term: str) -> bool:
    term = term.lower()
    return any(term in (organ.get(k) or "").lower() for k in ("model", "serialNumber", "patrimonyNumber"))

def location_detail(snapshot: LiveSnapshot, location_id: str, search: Optional[str] = None) -> Optional[Dict[str, Any]]:
    location = snapshot.find_location(location_id)
    if not location:
        return None
    ev = snapshot.evaluator()
    organs = ev.location_organs(location_id)
    listed = [o for o in organs if _matches_search(o, search)] if search else organs
    rows = []
    for organ in listed:
        last = ev.last_service_date(organ["id"])
        rows.append({
            **organ,
            "pending": ev.is_maintenance_pending(organ["id"]),
            "lastServiceDate": last.isoformat() if last else None,
        })
    return {
        "location": location,
        "organs": rows,
        "pendingCount": ev.pending_count(location_id),
        "hasOrgans": len(organs) > 0,
    }

def organ_history(snapshot: LiveSnapshot, organ_id: str) -> List[Dict[str, Any]]:
    items = [m for m in snapshot.maintenances if m.get("organId") == organ_id]
    return sorted(items, key=lambda m: m.get("date") or "", reverse=True)


# ---------------------- Reports ----------------------

def filter_maintenances(
    snapshot: LiveSnapshot,
    adm: Optional[str] = None,
    location_id: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
) -> List[Dict[str, Any]]:
    ev = snapshot.evaluator()
    organs = {o["id"]: o for o in snapshot.organs}
    rows = []
    for m in snapshot.maintenances:
        organ = organs.get(m.get("organId"))
        if not organ:
            continue
        location = snapshot.find_location(organ.get("locationId"))
        if not location:
            continue
        if adm and location["adm"] != adm:
            continue
        if location_id and location["id"] != location_id:
            continue
        if date_from and m["date"] < date_from:
            continue
        if date_to and m["date"] > date_to:
            continue
        rows.append({
            **m,
            "organModel": organ.get("model", ""),
            "patrimonyNumber": organ.get("patrimonyNumber", ""),
            "locationName": location["name"],
            "adm": location["adm"],
            "organPending": ev.is_maintenance_pending(organ["id"]),
        })
    return sorted(rows, key=lambda r: r["date"], reverse=True)

def filter_deleted_items(
    snapshot: LiveSnapshot,
    adm: Optional[str] = None,
    location_id: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
) -> List[Dict[str, Any]]:
    location_name = None
    if location_id:
        loc = snapshot.find_location(location_id)
        location_name = loc["name"] if loc else None
    rows = []
    for item in snapshot.deleted_items:
        meta = item.get("metadata") or {}
        if adm and meta.get("adm") != adm:
            continue
        if location_id and meta.get("locationName") != location_name:
            continue
        day = (item.get("deletedAt") or "").split("T")[0]
        if date_from and day < date_from:
            continue
        if date_to and day > date_to:
            continue
        rows.append(item)
    return sorted(rows, key=lambda i: i.get("deletedAt") or "", reverse=True)


# ---------------------- CSV ----------------------

def _format_timestamp(value: Optional[str]) -> str:
    ts = pd.to_datetime(value, errors="coerce", utc=True)
    if pd.isna(ts):
        return value or ""
    return ts.strftime("%d/%m/%Y %H:%M:%S")

def maintenances_csv(rows: List[Dict[str, Any]]) -> str:
    records = [
        [
            r["date"],
            r.get("organModel", ""),
            r.get("patrimonyNumber", ""),
            r.get("adm", ""),
            r.get("locationName", ""),
            " & ".join(r.get("technicians") or []),
            r.get("occurrence", ""),
        ]
        for r in rows
    ]
    return pd.DataFrame(records, columns=MAINTENANCE_CSV_COLUMNS).to_csv(index=False)

def deleted_items_csv(rows: List[Dict[str, Any]]) -> str:
    records = []
    for item in rows:
        data = item.get("data") or {}
        meta = item.get("metadata") or {}
        is_organ = item.get("type") == "organ"
        records.append([
            _format_timestamp(item.get("deletedAt")),
            TYPE_LABELS.get(item.get("type"), item.get("type")),
            data.get("model", "") if is_organ else f"Manutenção de {data.get('date', '')}",
            data.get("patrimonyNumber", "") if is_organ else "",
            meta.get("adm") or "",
            meta.get("locationName") or "",
            item.get("reason", ""),
        ])
    return pd.DataFrame(records, columns=DELETED_CSV_COLUMNS).to_csv(index=False)
