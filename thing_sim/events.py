# thing_sim/events.py

import threading
from typing import Callable, List


class EventHook:
    """Registration list of observers for one event type.

    Every observer is called in isolation: an exception from one is logged
    and the rest still run.
    """

    def __init__(self, name: str, logger: Callable[[str], None] = print):
        self._name = name
        self._log = logger
        self._handlers: List[Callable[..., None]] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: Callable[..., None]) -> None:
        with self._lock:
            self._handlers.append(handler)

    def unsubscribe(self, handler: Callable[..., None]) -> None:
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)

    def fire(self, *args, **kwargs) -> None:
        with self._lock:
            handlers = list(self._handlers)

        for handler in handlers:
            try:
                handler(*args, **kwargs)
            except Exception as e:
                self._log(f"[EVENT] {self._name} handler error: {e}")

    def fire_async(self, *args, **kwargs) -> None:
        if not len(self):
            return
        threading.Thread(
            target=self.fire, args=args, kwargs=kwargs, name=f"EVENT_{self._name}", daemon=True
        ).start()
