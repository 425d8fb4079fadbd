import logging
import os
from typing import Optional, Dict, Any

from fastapi import FastAPI, HTTPException, Depends, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from . import reports, services
from .auth import (
    SessionRegistry,
    SessionState,
    create_session,
    delete_session,
    purge_expired_sessions,
    require_session,
    require_state,
)
from .constants import ADMS
from .db import connect
from .navigation import View, apply_intent
from .passcode import ERROR_DISPLAY_SECONDS, GateError
from .snapshot import LiveSnapshot
from .store import DocumentStore
from .utils import parse_iso_date, strip_or_none

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Organ Care v1")

# CORS configurable via environment
def _parse_csv_env(s: str) -> list[str]:
    parts = [p.strip() for p in (s or "").split(",")]
    return [p for p in parts if p]

_origins_env = os.getenv("ALLOWED_ORIGINS", "*")
_methods_env = os.getenv("CORS_ALLOW_METHODS", "*")
_headers_env = os.getenv("CORS_ALLOW_HEADERS", "*")
_creds_env = os.getenv("CORS_ALLOW_CREDENTIALS", "true").lower() in ("1", "true", "yes")

_allow_origins = ["*"] if _origins_env.strip() == "*" else _parse_csv_env(_origins_env)
_allow_methods = ["*"] if _methods_env.strip() == "*" else _parse_csv_env(_methods_env)
_allow_headers = ["*"] if _headers_env.strip() == "*" else _parse_csv_env(_headers_env)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allow_origins,
    allow_credentials=_creds_env,
    allow_methods=_allow_methods,
    allow_headers=_allow_headers,
)

@app.on_event("startup")
def startup():
    store = DocumentStore()
    store.ensure_schema()
    snapshot = LiveSnapshot()
    snapshot.attach(store)
    app.state.store = store
    app.state.snapshot = snapshot
    app.state.sessions = SessionRegistry()
    logger.info("Banco de dados em %s", store.db_path)

@app.on_event("shutdown")
def shutdown():
    snapshot = getattr(app.state, "snapshot", None)
    if snapshot is not None:
        snapshot.detach()


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store

def get_snapshot(request: Request) -> LiveSnapshot:
    snapshot = request.app.state.snapshot
    if snapshot.is_loading:
        raise HTTPException(status_code=503, detail="Carregando dados...")
    return snapshot

def _check_adm(adm: Optional[str]) -> Optional[str]:
    adm = strip_or_none(adm)
    if adm and adm not in ADMS:
        raise HTTPException(status_code=404, detail="ADM não encontrada")
    return adm

def _check_date(value: Optional[str], field: str) -> Optional[str]:
    if not value:
        return None
    d = parse_iso_date(value)
    if not d:
        raise HTTPException(status_code=400, detail=f"{field} deve estar no formato YYYY-MM-DD")
    return d.isoformat()


# ---------------------- Session ----------------------

@app.post("/auth/anonymous")
def open_session(request: Request, response: Response, store: DocumentStore = Depends(get_store)):
    with connect(store.db_path) as con:
        cur = con.cursor()
        expired = purge_expired_sessions(cur)
        session = create_session(cur)
        con.commit()
    for token in expired:
        request.app.state.sessions.drop(token)
    cookie_params = {
        "httponly": True,
        "samesite": "lax",
        "path": "/",
    }
    samesite_env = (os.getenv("COOKIE_SAMESITE", "lax") or "").strip().lower()
    if samesite_env in ("lax", "strict", "none"):
        cookie_params["samesite"] = samesite_env
    secure_env = os.getenv("COOKIE_SECURE", "false").lower() in ("1", "true", "yes")
    if cookie_params.get("samesite") == "none" or secure_env:
        cookie_params["secure"] = True
    response.set_cookie(key="session", value=session["token"], **cookie_params)
    return {"token": session["token"], "expires_at": session["expires_at"]}

@app.post("/auth/logout")
def logout(
    request: Request,
    response: Response,
    session: Dict[str, str] = Depends(require_session),
    store: DocumentStore = Depends(get_store),
):
    with connect(store.db_path) as con:
        cur = con.cursor()
        delete_session(cur, session["token"])
        con.commit()
    request.app.state.sessions.drop(session["token"])
    response.delete_cookie("session", path="/")
    return {"ok": True}

@app.get("/auth/session")
def session_info(
    request: Request,
    session: Dict[str, str] = Depends(require_session),
    state: SessionState = Depends(require_state),
):
    gate = state.gate
    return {
        "active": True,
        "expires_at": session["expires_at"],
        "loading": request.app.state.snapshot.is_loading,
        "navigation": state.navigation.as_dict(),
        "historyAuthorized": gate.history_authorized,
        "gate": {
            "open": gate.is_open,
            "hint": gate.hint,
            "error": gate.error_visible,
        },
    }

@app.post("/navigate")
def navigate(
    payload: Dict[str, Any],
    state: SessionState = Depends(require_state),
    snapshot: LiveSnapshot = Depends(get_snapshot),
):
    intent = str(payload.get("intent") or "").strip()
    if intent == "adm":
        _check_adm(payload.get("adm"))
    if intent == "location" and not snapshot.find_location(payload.get("locationId")):
        raise HTTPException(status_code=404, detail="Localidade não encontrada")
    if intent == "register-maintenance" and not snapshot.find_organ(payload.get("organId")):
        raise HTTPException(status_code=404, detail="Órgão não encontrado")
    try:
        state.navigation = apply_intent(state.navigation, intent, payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return state.navigation.as_dict()


# ---------------------- Dashboards ----------------------

@app.get("/adms")
def list_adms(snapshot: LiveSnapshot = Depends(get_snapshot), session=Depends(require_session)):
    return reports.adm_overview(snapshot)

@app.get("/adms/{adm}/locations")
def list_adm_locations(adm: str, snapshot: LiveSnapshot = Depends(get_snapshot), session=Depends(require_session)):
    _check_adm(adm)
    return reports.adm_locations(snapshot, adm)

@app.get("/locations/{location_id}")
def get_location(
    location_id: str,
    search: Optional[str] = None,
    snapshot: LiveSnapshot = Depends(get_snapshot),
    session=Depends(require_session),
):
    detail = reports.location_detail(snapshot, location_id, strip_or_none(search))
    if detail is None:
        raise HTTPException(status_code=404, detail="Localidade não encontrada")
    return detail

@app.get("/organs/{organ_id}/maintenances")
def get_organ_history(organ_id: str, snapshot: LiveSnapshot = Depends(get_snapshot), session=Depends(require_session)):
    organ = snapshot.find_organ(organ_id)
    if not organ:
        raise HTTPException(status_code=404, detail="Órgão não encontrado")
    return {
        "organ": organ,
        "pending": snapshot.evaluator().is_maintenance_pending(organ_id),
        "maintenances": reports.organ_history(snapshot, organ_id),
    }


# ---------------------- Organs ----------------------

@app.post("/organs")
def create_organ(
    payload: Dict[str, Any],
    store: DocumentStore = Depends(get_store),
    snapshot: LiveSnapshot = Depends(get_snapshot),
    state: SessionState = Depends(require_state),
):
    organ = services.add_organ(store, payload)
    state.navigation = state.navigation.open_location(organ["locationId"])
    return organ

@app.put("/organs/{organ_id}")
def update_organ(
    organ_id: str,
    payload: Dict[str, Any],
    store: DocumentStore = Depends(get_store),
    snapshot: LiveSnapshot = Depends(get_snapshot),
    state: SessionState = Depends(require_state),
):
    if not state.gate.has_edit_grant("organ", organ_id):
        raise HTTPException(status_code=403, detail="Edição não autorizada: valide a senha primeiro")
    organ, changed = services.update_organ(store, snapshot, organ_id, payload)
    state.gate.consume_edit_grant("organ", organ_id)
    state.navigation = state.navigation.open_location(organ["locationId"])
    return {"organ": organ, "updated_fields": sorted(changed)}


# ---------------------- Maintenances ----------------------

@app.post("/maintenances")
def create_maintenance(
    payload: Dict[str, Any],
    store: DocumentStore = Depends(get_store),
    snapshot: LiveSnapshot = Depends(get_snapshot),
    state: SessionState = Depends(require_state),
):
    maintenance, warnings = services.add_maintenance(store, snapshot, payload)
    state.navigation = state.navigation.back_to_location()
    return {"maintenance": maintenance, "warnings": warnings}

@app.put("/maintenances/{maintenance_id}")
def update_maintenance(
    maintenance_id: str,
    payload: Dict[str, Any],
    store: DocumentStore = Depends(get_store),
    snapshot: LiveSnapshot = Depends(get_snapshot),
    state: SessionState = Depends(require_state),
):
    if not state.gate.has_edit_grant("maintenance", maintenance_id):
        raise HTTPException(status_code=403, detail="Edição não autorizada: valide a senha primeiro")
    maintenance, warnings = services.update_maintenance(store, snapshot, maintenance_id, payload)
    state.gate.consume_edit_grant("maintenance", maintenance_id)
    if state.navigation.view == View.EDIT_MAINTENANCE:
        state.navigation = state.navigation.open_reports()
    return {"maintenance": maintenance, "warnings": warnings}


# ---------------------- Passcode gate ----------------------

@app.post("/gate/request")
def request_action(
    payload: Dict[str, Any],
    snapshot: LiveSnapshot = Depends(get_snapshot),
    state: SessionState = Depends(require_state),
):
    kind = payload.get("kind")
    mode = payload.get("mode")
    target_id = strip_or_none(payload.get("targetId"))
    if kind == "organ" and target_id and not snapshot.find_organ(target_id):
        raise HTTPException(status_code=404, detail="Órgão não encontrado")
    if kind == "maintenance" and target_id and not snapshot.find_maintenance(target_id):
        raise HTTPException(status_code=404, detail="Manutenção não encontrada")
    try:
        hint = state.gate.request(kind, mode, target_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"hint": hint, "kind": kind, "mode": mode, "targetId": target_id}

@app.post("/gate/submit")
def submit_action(
    payload: Dict[str, Any],
    store: DocumentStore = Depends(get_store),
    snapshot: LiveSnapshot = Depends(get_snapshot),
    state: SessionState = Depends(require_state),
):
    try:
        outcome = state.gate.submit(payload.get("passcode"), payload.get("reason"))
    except GateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if outcome.status == "denied":
        return {"status": "denied", "hint": outcome.hint, "errorSeconds": ERROR_DISPLAY_SECONDS}
    if outcome.status == "reason_required":
        raise HTTPException(status_code=400, detail="Por favor, informe o motivo da exclusão.")

    action = outcome.action
    result: Dict[str, Any] = {"status": "authorized", "kind": action.kind, "mode": action.mode}
    if action.mode == "edit":
        if action.kind == "organ":
            state.navigation = state.navigation.edit_organ(action.target_id)
        else:
            state.navigation = state.navigation.edit_maintenance(action.target_id)
        result["navigation"] = state.navigation.as_dict()
    elif action.mode == "delete":
        if action.kind == "organ":
            result.update(services.delete_organ(store, snapshot, action.target_id, outcome.reason))
        else:
            result.update(services.delete_maintenance(store, snapshot, action.target_id, outcome.reason))
    else:
        result["historyAuthorized"] = True
    return result

@app.post("/gate/cancel")
def cancel_action(state: SessionState = Depends(require_state)):
    state.gate.cancel()
    return {"ok": True}


# ---------------------- Reports ----------------------

def _report_filters(
    adm: Optional[str] = None,
    location_id: Optional[str] = Query(None, alias="locationId"),
    date_from: Optional[str] = Query(None, alias="dateFrom"),
    date_to: Optional[str] = Query(None, alias="dateTo"),
) -> Dict[str, Optional[str]]:
    return {
        "adm": _check_adm(adm),
        "location_id": strip_or_none(location_id),
        "date_from": _check_date(date_from, "dateFrom"),
        "date_to": _check_date(date_to, "dateTo"),
    }

def _require_history(state: SessionState = Depends(require_state)) -> SessionState:
    if not state.gate.history_authorized:
        raise HTTPException(status_code=403, detail="Acesso ao histórico requer validação da senha")
    return state

def _csv_response(content: str, file_name: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )

@app.get("/reports/maintenances")
def report_maintenances(
    filters: Dict[str, Optional[str]] = Depends(_report_filters),
    snapshot: LiveSnapshot = Depends(get_snapshot),
    session=Depends(require_session),
):
    return reports.filter_maintenances(snapshot, **filters)

@app.get("/reports/maintenances.csv")
def export_maintenances(
    filters: Dict[str, Optional[str]] = Depends(_report_filters),
    snapshot: LiveSnapshot = Depends(get_snapshot),
    session=Depends(require_session),
):
    rows = reports.filter_maintenances(snapshot, **filters)
    return _csv_response(reports.maintenances_csv(rows), "relatorio_manutencao.csv")

@app.get("/reports/deleted")
def report_deleted(
    filters: Dict[str, Optional[str]] = Depends(_report_filters),
    snapshot: LiveSnapshot = Depends(get_snapshot),
    state: SessionState = Depends(_require_history),
):
    return reports.filter_deleted_items(snapshot, **filters)

@app.get("/reports/deleted.csv")
def export_deleted(
    filters: Dict[str, Optional[str]] = Depends(_report_filters),
    snapshot: LiveSnapshot = Depends(get_snapshot),
    state: SessionState = Depends(_require_history),
):
    rows = reports.filter_deleted_items(snapshot, **filters)
    return _csv_response(reports.deleted_items_csv(rows), "historico_exclusoes.csv")
