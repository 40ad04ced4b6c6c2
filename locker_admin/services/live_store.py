"""
Live view store: fans several collection subscriptions into one derived view.

Each subscription overwrites its own named slot with the full snapshot it
received; the view is then recomputed from all slots by a pure function.
Nothing is patched incrementally, so snapshots arriving out of order across
collections cannot leave the view drifting. Every snapshot is numbered as
it lands, and a view computed from an older snapshot is dropped once a
newer one has been sent.
"""
import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional

_logger = logging.getLogger(__name__)
_logger.setLevel(logging.INFO)


class LiveStore:
    def __init__(self, repo, collections: Iterable[str],
                 compute: Callable[[Dict[str, List[Dict[str, Any]]]], Any],
                 on_view: Callable[[Any], None],
                 on_error: Optional[Callable[[str, Exception], None]] = None):
        self.repo = repo
        self.collections = list(collections)
        self.compute = compute
        self.on_view = on_view
        self.on_error = on_error
        self.slots: Dict[str, List[Dict[str, Any]]] = {}
        self._handles = []
        self._lock = threading.Lock()
        self._emit_lock = threading.Lock()
        self._stopped = False
        self._seq = 0
        self._emitted_seq = 0

    @property
    def ready(self) -> bool:
        return all(name in self.slots for name in self.collections)

    def start(self):
        """Subscribe to every collection. Already-open subscriptions are closed if one fails."""
        try:
            for name in self.collections:
                handle = self.repo.subscribe(
                    name,
                    lambda docs, name=name: self._on_snapshot(name, docs),
                    lambda error, name=name: self._on_error(name, error),
                )
                self._handles.append(handle)
        except Exception:
            self.stop()
            raise
        return self

    def _on_snapshot(self, name: str, docs: List[Dict[str, Any]]):
        with self._lock:
            if self._stopped:
                return
            self.slots[name] = list(docs)
            if not self.ready:
                return
            snapshot = dict(self.slots)
            self._seq += 1
            seq = self._seq
        try:
            view = self.compute(snapshot)
        except Exception as e:
            _logger.error(f"Recomputing live view after {name} snapshot failed: {str(e)}")
            self._on_error(name, e)
            return
        with self._emit_lock:
            # A slower recompute of an older snapshot must not overwrite a newer view
            if self._stopped or seq < self._emitted_seq:
                _logger.info(f"Dropping stale live view #{seq} (already sent #{self._emitted_seq})")
                return
            self._emitted_seq = seq
            self.on_view(view)

    def _on_error(self, name: str, error: Exception):
        _logger.error(f"Live subscription to {name} failed: {str(error)}")
        if self.on_error and not self._stopped:
            self.on_error(name, error)

    def stop(self):
        """Unsubscribe every listener; later snapshots are ignored."""
        with self._lock:
            self._stopped = True
            handles, self._handles = self._handles, []
        for handle in handles:
            try:
                handle.unsubscribe()
            except Exception as e:
                _logger.warning(f"Failed to unsubscribe listener: {str(e)}")
