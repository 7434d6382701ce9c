# thing_sim/thing.py

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from .payload import now_iso


class ThingStatus(Enum):
    INITIALIZING = "Initializing"
    STABLE = "Stable"
    TERMINATED = "Terminated"


@dataclass(frozen=True)
class SensorReading:
    temperature: float
    humidity: float
    status: ThingStatus
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "temperature": self.temperature,
            "humidity": self.humidity,
            "status": self.status.value,
            "timestamp": self.timestamp,
        }


def _approach(current: float, target: float, step: float) -> float:
    delta = target - current
    if abs(delta) <= step:
        return target
    return current + step if delta > 0 else current - step


@dataclass
class Thing:
    """Simulated room unit whose readings drift toward their setpoints.

    Fields are guarded by ``lock``. Callers that also hold the simulator lock
    must take it first.
    """

    current_temperature: float = 20.0
    target_temperature: float = 20.0
    current_humidity: float = 50.0
    target_humidity: float = 50.0
    update_interval_msec: int = 0
    temperature_step: float = 0.5
    humidity_step: float = 1.0
    status: ThingStatus = ThingStatus.INITIALIZING

    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    logger: Callable[[str], None] = field(default=print, repr=False)

    _stop: threading.Event = field(default_factory=threading.Event, init=False, repr=False)
    _thread: Optional[threading.Thread] = field(default=None, init=False, repr=False)

    def seed(self, target_temperature: float, humidity: float) -> None:
        with self.lock:
            if self.status is not ThingStatus.INITIALIZING:
                raise RuntimeError(f"cannot seed a thing in state {self.status.value}")
            self.target_temperature = target_temperature
            self.current_humidity = humidity
            self.target_humidity = humidity

    def initialize(self, interval_msec: int) -> None:
        # Precondition: called once.
        with self.lock:
            if self.status is ThingStatus.TERMINATED:
                raise RuntimeError("cannot initialize a terminated thing")
            self.update_interval_msec = interval_msec
            self.status = ThingStatus.STABLE
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="THING", daemon=True)
        self._thread.start()
        self.logger(f"[THING] Stable, updating every {interval_msec}ms")

    def tick(self) -> None:
        with self.lock:
            if self.status is not ThingStatus.STABLE:
                return
            self.current_temperature = _approach(
                self.current_temperature, self.target_temperature, self.temperature_step
            )
            self.current_humidity = _approach(self.current_humidity, self.target_humidity, self.humidity_step)

    def read(self) -> SensorReading:
        with self.lock:
            return SensorReading(
                temperature=self.current_temperature,
                humidity=self.current_humidity,
                status=self.status,
                timestamp=now_iso(),
            )

    def terminate(self) -> None:
        with self.lock:
            if self.status is ThingStatus.TERMINATED:
                return
            self.status = ThingStatus.TERMINATED
        self._stop.set()
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)
        self.logger("[THING] Terminated")

    def _run(self) -> None:
        with self.lock:
            period = max(0.001, self.update_interval_msec / 1000.0)
        while not self._stop.wait(period):
            self.tick()
