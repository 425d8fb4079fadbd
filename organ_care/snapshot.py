"""In-memory view of the stored collections, kept current by store pushes."""
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .constants import INITIAL_LOCATIONS, find_location
from .pending import PendingEvaluator
from .store import COLLECTIONS, DocumentStore

logger = logging.getLogger(__name__)


class LiveSnapshot:
    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self.clock = clock
        self.locations: List[Dict[str, Any]] = list(INITIAL_LOCATIONS)
        self._data: Dict[str, List[Dict[str, Any]]] = {c: [] for c in COLLECTIONS}
        self._loaded = set()
        self._unsubscribers: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    @property
    def organs(self) -> List[Dict[str, Any]]:
        return self._data["organs"]

    @property
    def maintenances(self) -> List[Dict[str, Any]]:
        return self._data["maintenances"]

    @property
    def deleted_items(self) -> List[Dict[str, Any]]:
        return self._data["deletedItems"]

    @property
    def is_loading(self) -> bool:
        return len(self._loaded) < len(COLLECTIONS)

    def attach(self, store: DocumentStore) -> None:
        for collection in COLLECTIONS:
            self._unsubscribers.append(
                store.subscribe(
                    collection,
                    lambda docs, c=collection: self._replace(c, docs),
                    lambda err, c=collection: self._failed(c, err),
                )
            )

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _replace(self, collection: str, docs: List[Dict[str, Any]]) -> None:
        with self._lock:
            self._data[collection] = docs
            self._loaded.add(collection)

    def _failed(self, collection: str, err: Exception) -> None:
        # keep whatever was loaded before; never hang in the loading state
        logger.error("Erro ao carregar %s: %s", collection, err)
        with self._lock:
            self._loaded.add(collection)

    def find_organ(self, organ_id: str) -> Optional[Dict[str, Any]]:
        return next((o for o in self.organs if o.get("id") == organ_id), None)

    def find_maintenance(self, maintenance_id: str) -> Optional[Dict[str, Any]]:
        return next((m for m in self.maintenances if m.get("id") == maintenance_id), None)

    def find_location(self, location_id: Optional[str]) -> Optional[Dict[str, Any]]:
        return find_location(location_id, self.locations)

    def evaluator(self) -> PendingEvaluator:
        return PendingEvaluator(self.organs, self.maintenances, self.locations, clock=self.clock)
