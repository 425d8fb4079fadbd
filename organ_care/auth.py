import os
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from fastapi import Cookie, Depends, Header, HTTPException, Request

from .db import connect
from .navigation import NavigationState
from .passcode import PasscodeGate

SESSION_DURATION_SECONDS = int(os.getenv("SESSION_DURATION_SECONDS", "28800"))


@dataclass
class SessionState:
    """Per-session state kept in memory only; lost when the process restarts."""
    gate: PasscodeGate = field(default_factory=PasscodeGate)
    navigation: NavigationState = field(default_factory=NavigationState)


class SessionRegistry:
    def __init__(self, gate_factory=PasscodeGate):
        self.gate_factory = gate_factory
        self._states: Dict[str, SessionState] = {}
        self._lock = threading.Lock()

    def get(self, token: str) -> SessionState:
        with self._lock:
            state = self._states.get(token)
            if state is None:
                state = SessionState(gate=self.gate_factory())
                self._states[token] = state
            return state

    def drop(self, token: str) -> None:
        with self._lock:
            self._states.pop(token, None)


def create_session(cur) -> Dict[str, str]:
    token = secrets.token_hex(32)
    expires_at = (datetime.utcnow() + timedelta(seconds=SESSION_DURATION_SECONDS)).isoformat()
    cur.execute(
        "INSERT INTO anon_session(token, expires_at) VALUES (?,?)",
        (token, expires_at),
    )
    return {"token": token, "expires_at": expires_at}


def purge_expired_sessions(cur) -> List[str]:
    now = datetime.utcnow().isoformat()
    rows = cur.execute("SELECT token FROM anon_session WHERE expires_at < ?", (now,)).fetchall()
    cur.execute("DELETE FROM anon_session WHERE expires_at < ?", (now,))
    return [r["token"] for r in rows]


def delete_session(cur, token: str) -> None:
    cur.execute("DELETE FROM anon_session WHERE token=?", (token,))


def _extract_token(authorization: Optional[str], cookie_token: Optional[str] = None) -> str:
    if not authorization:
        if cookie_token:
            return cookie_token
        raise HTTPException(status_code=401, detail="Sessão requerida")
    prefix = "Bearer "
    if not authorization.startswith(prefix):
        raise HTTPException(status_code=401, detail="Formato de token inválido")
    token = authorization[len(prefix):].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Sessão requerida")
    return token


def get_current_session(
    request: Request,
    authorization: Optional[str] = Header(None),
    session: Optional[str] = Cookie(default=None),
) -> Dict[str, str]:
    token = _extract_token(authorization, session)
    store = request.app.state.store
    with connect(store.db_path) as con:
        cur = con.cursor()
        row = cur.execute("SELECT token, expires_at FROM anon_session WHERE token=?", (token,)).fetchone()
        if not row:
            raise HTTPException(status_code=401, detail="Sessão não válida")
        try:
            expires_at = datetime.fromisoformat(row["expires_at"])
        except ValueError:
            expires_at = datetime.utcnow() - timedelta(seconds=1)
        if expires_at < datetime.utcnow():
            delete_session(cur, token)
            con.commit()
            request.app.state.sessions.drop(token)
            raise HTTPException(status_code=401, detail="Sessão expirada")
        return {"token": row["token"], "expires_at": row["expires_at"]}


def require_session(session=Depends(get_current_session)) -> Dict[str, str]:
    return session


def require_state(request: Request, session=Depends(get_current_session)) -> SessionState:
    return request.app.state.sessions.get(session["token"])
