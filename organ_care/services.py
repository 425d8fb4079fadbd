import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException

from .snapshot import LiveSnapshot
from .store import DocumentStore, StorageError
from .utils import diff_rows, normalize_maintenance, normalize_organ, strip_or_empty

logger = logging.getLogger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())

def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")

def _write_failed(message: str):
    logger.exception(message)
    return HTTPException(status_code=500, detail=message)

def _get_organ(snapshot: LiveSnapshot, organ_id: str) -> Dict[str, Any]:
    organ = snapshot.find_organ(organ_id)
    if not organ:
        raise HTTPException(status_code=404, detail="Órgão não encontrado")
    return organ

def _get_maintenance(snapshot: LiveSnapshot, maintenance_id: str) -> Dict[str, Any]:
    m = snapshot.find_maintenance(maintenance_id)
    if not m:
        raise HTTPException(status_code=404, detail="Manutenção não encontrada")
    return m

def _deleted_item(kind: str, data: Dict[str, Any], reason: str, location: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "id": new_id(),
        "type": kind,
        "data": data,
        "reason": reason,
        "deletedAt": utc_timestamp(),
        "metadata": {
            "locationName": location["name"] if location else None,
            "adm": location["adm"] if location else None,
        },
    }

def _require_reason(reason: Optional[str]) -> str:
    reason = strip_or_empty(reason)
    if not reason:
        raise HTTPException(status_code=400, detail="Por favor, informe o motivo da exclusão.")
    return reason


# ---------------------- Organs ----------------------

def add_organ(store: DocumentStore, payload: Dict[str, Any]) -> Dict[str, Any]:
    organ = {"id": new_id(), **normalize_organ(payload)}
    try:
        store.set("organs", organ["id"], organ)
    except StorageError:
        raise _write_failed("Erro ao salvar o órgão.")
    logger.info("Órgão %s registrado em %s", organ["id"], organ["locationId"])
    return organ

def update_organ(store: DocumentStore, snapshot: LiveSnapshot, organ_id: str, payload: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    current = _get_organ(snapshot, organ_id)
    organ = {"id": organ_id, **normalize_organ(payload)}
    try:
        store.set("organs", organ_id, organ)
    except StorageError:
        raise _write_failed("Erro ao atualizar o órgão.")
    changed = diff_rows(current, organ)
    logger.info("Órgão %s atualizado: %s", organ_id, sorted(changed))
    return organ, changed

def delete_organ(store: DocumentStore, snapshot: LiveSnapshot, organ_id: str, reason: Optional[str]) -> Dict[str, Any]:
    """Archive the organ in deletedItems and remove it with all its maintenances, atomically."""
    reason = _require_reason(reason)
    organ = _get_organ(snapshot, organ_id)
    deleted = _deleted_item("organ", organ, reason, snapshot.find_location(organ.get("locationId")))
    try:
        batch = store.batch()
        batch.set("deletedItems", deleted["id"], deleted)
        batch.delete("organs", organ_id)
        maintenances = store.query("maintenances", "organId", organ_id)
        for m in maintenances:
            batch.delete("maintenances", m["id"])
        batch.commit()
    except StorageError:
        raise _write_failed("Erro ao excluir o órgão.")
    logger.info("Órgão %s excluído com %d manutenções", organ_id, len(maintenances))
    return {"deletedItem": deleted, "maintenancesRemoved": len(maintenances)}


# ---------------------- Maintenances ----------------------

def _normalize_for_snapshot(snapshot: LiveSnapshot, payload: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    data, warnings = normalize_maintenance(payload)
    if not snapshot.find_organ(data["organId"]):
        raise HTTPException(status_code=400, detail="Órgão informado não existe")
    return data, warnings

def add_maintenance(store: DocumentStore, snapshot: LiveSnapshot, payload: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    data, warnings = _normalize_for_snapshot(snapshot, payload)
    maintenance = {"id": new_id(), **data}
    try:
        store.set("maintenances", maintenance["id"], maintenance)
    except StorageError:
        raise _write_failed("Erro ao salvar a manutenção.")
    logger.info("Manutenção %s registrada para o órgão %s", maintenance["id"], maintenance["organId"])
    return maintenance, warnings

def update_maintenance(store: DocumentStore, snapshot: LiveSnapshot, maintenance_id: str, payload: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    _get_maintenance(snapshot, maintenance_id)
    data, warnings = _normalize_for_snapshot(snapshot, payload)
    maintenance = {"id": maintenance_id, **data}
    try:
        store.set("maintenances", maintenance_id, maintenance)
    except StorageError:
        raise _write_failed("Erro ao atualizar a manutenção.")
    logger.info("Manutenção %s atualizada", maintenance_id)
    return maintenance, warnings

def delete_maintenance(store: DocumentStore, snapshot: LiveSnapshot, maintenance_id: str, reason: Optional[str]) -> Dict[str, Any]:
    reason = _require_reason(reason)
    maintenance = _get_maintenance(snapshot, maintenance_id)
    organ = snapshot.find_organ(maintenance.get("organId"))
    location = snapshot.find_location(organ.get("locationId")) if organ else None
    deleted = _deleted_item("maintenance", maintenance, reason, location)
    try:
        store.batch().set("deletedItems", deleted["id"], deleted).delete("maintenances", maintenance_id).commit()
    except StorageError:
        raise _write_failed("Erro ao excluir a manutenção.")
    logger.info("Manutenção %s excluída", maintenance_id)
    return {"deletedItem": deleted}
