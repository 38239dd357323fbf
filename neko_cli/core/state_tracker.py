"""
The process-wide observable map of track identifier -> DownloadState.
"""

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType

from neko_cli.models.state import DOWNLOADED, DownloadState
from neko_cli.models.track import TrackRecord

log = logging.getLogger(__name__)

StateSnapshot = Mapping[str, DownloadState]
StateListener = Callable[[StateSnapshot], None]


class DownloadStateTracker:
    """
    Holds the download state of every known track.

    Writers replace the whole map under a lock, so a reader always sees a
    complete, immutable snapshot. `set` and `remove` are the only mutators and
    the last writer wins. Listeners are called synchronously with the new
    snapshot after every change.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._states: StateSnapshot = MappingProxyType({})
        self._listeners: list[StateListener] = []

    def load_from(self, records: Iterable[TrackRecord]) -> None:
        """Marks every stored record as downloaded."""
        with self._lock:
            states = dict(self._states)
            states.update({record.id: DOWNLOADED for record in records})
            self._states = MappingProxyType(states)
            snapshot = self._states
        log.debug(f"State tracker initialized with {len(snapshot)} stored tracks.")
        self._notify(snapshot)

    def get(self, track_id: str) -> DownloadState | None:
        """None means the track has no record and no download in flight."""
        return self._states.get(track_id)

    def snapshot(self) -> StateSnapshot:
        return self._states

    def set(self, track_id: str, state: DownloadState) -> None:
        with self._lock:
            states = dict(self._states)
            states[track_id] = state
            self._states = MappingProxyType(states)
            snapshot = self._states
        self._notify(snapshot)

    def remove(self, track_id: str) -> None:
        with self._lock:
            if track_id not in self._states:
                return
            states = dict(self._states)
            del states[track_id]
            self._states = MappingProxyType(states)
            snapshot = self._states
        self._notify(snapshot)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Registers a listener for the full map and returns a function that
        unregisters it.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, snapshot: StateSnapshot) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as e:
                log.warning(
                    f"State listener raised an error: {e}",
                    exc_info=log.getEffectiveLevel() == logging.DEBUG,
                )
