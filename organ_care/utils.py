from datetime import date, datetime
from typing import Optional, Dict, Any, List, Tuple

from fastapi import HTTPException

from .constants import MAX_PHOTOS, MAX_TECHNICIANS, find_location


def strip_or_none(x: Optional[str]):
    if x is None:
        return None
    s = str(x).strip().replace("\t", "")
    return s if s else None

def strip_or_empty(x: Optional[str]) -> str:
    return strip_or_none(x) or ""

def parse_iso_date(s: Optional[str]) -> Optional[date]:
    if not s:
        return None
    if isinstance(s, date):
        return s
    try:
        return datetime.strptime(str(s)[:10], "%Y-%m-%d").date()
    except ValueError:
        return None

def to_bool(x) -> bool:
    if isinstance(x, str):
        return x.strip().lower() in ("1", "true", "yes", "sim", "on")
    return bool(x)

def diff_rows(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Any]:
    changed = {}
    keys = set(before.keys()) | set(after.keys())
    for k in keys:
        if before.get(k) != after.get(k):
            changed[k] = {"from": before.get(k), "to": after.get(k)}
    return changed


# ---------------------- Organ ----------------------

def normalize_organ(payload: Dict[str, Any]) -> Dict[str, Any]:
    out = {
        "model": strip_or_empty(payload.get("model")),
        "serialNumber": strip_or_empty(payload.get("serialNumber")),
        "patrimonyNumber": strip_or_empty(payload.get("patrimonyNumber")),
        "churchLocation": strip_or_empty(payload.get("churchLocation")),
        "locationId": strip_or_empty(payload.get("locationId")),
    }
    if not out["model"]:
        raise HTTPException(status_code=400, detail="Modelo é obrigatório")
    if not find_location(out["locationId"]):
        raise HTTPException(status_code=400, detail="Localidade inválida")
    return out


# ---------------------- Maintenance ----------------------

def clean_technicians(raw) -> List[str]:
    if raw is None:
        raw = []
    if isinstance(raw, str):
        raw = [raw]
    technicians = [t for t in (strip_or_empty(x) for x in raw) if t != ""]
    if not technicians:
        raise HTTPException(status_code=400, detail="Informe ao menos um técnico")
    if len(technicians) > MAX_TECHNICIANS:
        raise HTTPException(status_code=400, detail=f"No máximo {MAX_TECHNICIANS} técnicos por atendimento")
    return technicians

def clamp_photos(raw) -> Tuple[List[str], Optional[str]]:
    """Keep at most MAX_PHOTOS inline images, returning a warning when some were dropped."""
    photos = list(raw or [])
    for p in photos:
        if not isinstance(p, str) or not p.startswith("data:image/"):
            raise HTTPException(status_code=400, detail="Foto inválida: envie imagens embutidas (data:image/...)")
    if len(photos) > MAX_PHOTOS:
        return photos[:MAX_PHOTOS], f"Apenas as primeiras {MAX_PHOTOS} fotos foram mantidas para respeitar o limite de {MAX_PHOTOS}."
    return photos, None

def normalize_part_details(raw) -> Dict[str, str]:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise HTTPException(status_code=400, detail="partExchangeDetails inválido")
    return {
        "description": strip_or_empty(raw.get("description")),
        "reason": strip_or_empty(raw.get("reason")),
        "observation": strip_or_empty(raw.get("observation")),
    }

def normalize_maintenance(payload: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    warnings: List[str] = []
    organ_id = strip_or_none(payload.get("organId"))
    if not organ_id:
        raise HTTPException(status_code=400, detail="Selecione um órgão")
    d = parse_iso_date(payload.get("date"))
    if not d:
        raise HTTPException(status_code=400, detail="date é obrigatório no formato YYYY-MM-DD")
    occurrence = strip_or_empty(payload.get("occurrence"))
    if not occurrence:
        raise HTTPException(status_code=400, detail="Descreva a ocorrência")
    photos, warning = clamp_photos(payload.get("photos"))
    if warning:
        warnings.append(warning)
    has_part_exchange = to_bool(payload.get("hasPartExchange"))
    out = {
        "organId": organ_id,
        "date": d.isoformat(),
        "technicians": clean_technicians(payload.get("technicians")),
        "occurrence": occurrence,
        "hasPartExchange": has_part_exchange,
        "photos": photos,
    }
    if has_part_exchange:
        out["partExchangeDetails"] = normalize_part_details(payload.get("partExchangeDetails"))
    return out, warnings
