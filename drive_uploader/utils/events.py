from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
import inspect
import logging
logger = logging.getLogger(__name__)

EVENTS = ("progress", "status_change", "success", "error")


@dataclass
class UploadCallbacks:
    """Callback bundle accepted by the manager factories. All optional."""
    on_progress: Optional[Callable] = None       # (file_id, percent)
    on_status_change: Optional[Callable] = None  # (file_id, status)
    on_success: Optional[Callable] = None        # (file_id, outcome)
    on_error: Optional[Callable] = None          # (file_id, message)


class CallbackBus:
    """
    Per-manager event emitter for upload events.

    Seeded from any object exposing on_progress / on_status_change /
    on_success / on_error; missing hooks mean the event is dropped.
    """

    def __init__(self, callbacks: Any = None):
        self._listeners: Dict[str, List[Callable]] = {}
        if callbacks is not None:
            for event_name in EVENTS:
                callback = getattr(callbacks, f"on_{event_name}", None)
                if callback is not None:
                    self.on(event_name, callback)

    def on(self, event_name: str, callback: Callable):
        """Subscribe to an event."""
        if event_name not in EVENTS:
            raise ValueError(f"Unknown event: {event_name}")
        if event_name not in self._listeners:
            self._listeners[event_name] = []
        if callback not in self._listeners[event_name]:
            self._listeners[event_name].append(callback)

    def off(self, event_name: str, callback: Callable):
        """Unsubscribe from an event."""
        if event_name in self._listeners:
            if callback in self._listeners[event_name]:
                self._listeners[event_name].remove(callback)

    def has_listeners(self, event_name: str) -> bool:
        return bool(self._listeners.get(event_name))

    async def emit(self, event_name: str, *args, **kwargs):
        """Emit an event to all listeners. Listener errors are logged, not raised."""
        if event_name not in self._listeners:
            return

        for callback in self._listeners[event_name][:]:  # Copy list to avoid modification during iteration
            try:
                result = callback(*args, **kwargs)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Error in {event_name} callback: {e}")
