"""Passcode gate for edit, delete and history actions.

The expected code is derived from a visible hint by a fixed public rule, so the
gate only deters casual use; it is not access control.
"""
import logging
import random
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional, Set, Tuple

logger = logging.getLogger(__name__)

KINDS = ("organ", "maintenance", "history")
MODES = ("edit", "delete", "view")
ERROR_DISPLAY_SECONDS = 2.0

_rng = random.SystemRandom()


def generate_hint() -> str:
    return str(_rng.randint(1000, 9999))


def calculate_expected_passcode(hint: str) -> str:
    """Digit d at 0-based position i becomes ((d + 1) * (i + 1)) % 10."""
    return "".join(str(((int(ch) + 1) * (i + 1)) % 10) for i, ch in enumerate(hint))


def sanitize_passcode_input(raw) -> str:
    return re.sub(r"\D", "", "" if raw is None else str(raw))[:4]


class GateError(Exception):
    """Submit without an open challenge."""


@dataclass(frozen=True)
class PendingAction:
    kind: str
    mode: str
    target_id: Optional[str] = None


@dataclass(frozen=True)
class GateOutcome:
    status: str  # authorized | denied | reason_required
    action: PendingAction
    hint: Optional[str] = None
    reason: Optional[str] = None

    @property
    def authorized(self) -> bool:
        return self.status == "authorized"


def validate_action(kind: str, mode: str, target_id: Optional[str]) -> PendingAction:
    if kind not in KINDS:
        raise ValueError(f"Tipo de ação inválido: {kind}")
    if mode not in MODES:
        raise ValueError(f"Modo inválido: {mode}")
    if kind == "history":
        if mode != "view":
            raise ValueError("O histórico só pode ser visualizado")
        return PendingAction(kind, mode)
    if mode == "view":
        raise ValueError(f"Modo 'view' não se aplica a {kind}")
    if not target_id:
        raise ValueError("Identificador do registro é obrigatório")
    return PendingAction(kind, mode, target_id)


class PasscodeGate:
    def __init__(
        self,
        hint_factory: Callable[[], str] = generate_hint,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.hint_factory = hint_factory
        self.clock = clock
        self.pending: Optional[PendingAction] = None
        self.hint: Optional[str] = None
        self.history_authorized = False
        self._error_until = 0.0
        self._edit_grants: Set[Tuple[str, str]] = set()

    @property
    def is_open(self) -> bool:
        return self.pending is not None

    @property
    def error_visible(self) -> bool:
        return self.clock() < self._error_until

    def request(self, kind: str, mode: str, target_id: Optional[str] = None) -> str:
        self.pending = validate_action(kind, mode, target_id)
        self.hint = self.hint_factory()
        self._error_until = 0.0
        return self.hint

    def cancel(self) -> None:
        self.pending = None
        self.hint = None
        self._error_until = 0.0

    def submit(self, passcode: Optional[str], reason: Optional[str] = None) -> GateOutcome:
        if self.pending is None or self.hint is None:
            raise GateError("Nenhuma verificação pendente")
        action = self.pending
        if sanitize_passcode_input(passcode) != calculate_expected_passcode(self.hint):
            self._error_until = self.clock() + ERROR_DISPLAY_SECONDS
            self.hint = self.hint_factory()
            logger.info("Senha incorreta para %s/%s; nova dica gerada", action.kind, action.mode)
            return GateOutcome("denied", action, hint=self.hint)

        reason = "" if reason is None else str(reason).strip()
        if action.mode == "delete" and not reason:
            return GateOutcome("reason_required", action, hint=self.hint)

        if action.mode == "edit":
            self._edit_grants.add((action.kind, action.target_id))
        elif action.mode == "view":
            self.history_authorized = True
        self.cancel()
        return GateOutcome("authorized", action, reason=reason or None)

    def has_edit_grant(self, kind: str, target_id: str) -> bool:
        return (kind, target_id) in self._edit_grants

    def consume_edit_grant(self, kind: str, target_id: str) -> None:
        self._edit_grants.discard((kind, target_id))
