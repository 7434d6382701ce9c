# thing_sim/simulator.py

import os
import threading
import time
from datetime import datetime
from typing import Callable, Optional

from . import config
from .errors import CaptureCancelled, CaptureError, ConfigParseError, TransportError
from .events import EventHook
from .mqtt_session import MethodRequest, MethodResponse
from .payload import Structured, classify, encode, envelope, now_iso, parse_object
from .thing import Thing, ThingStatus


def parse_interval(value: object) -> int:
    if isinstance(value, bool):
        raise ConfigParseError(f"interval must be a number, got {value!r}")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value < 0:
        raise ConfigParseError(f"interval must be a non-negative integer, got {value!r}")
    return value


class CaptureTask:
    """Handle for one capture loop thread.

    ``result()`` re-raises whatever ended the loop; a clean stop ends with
    CaptureCancelled.
    """

    def __init__(self, target: Callable[["CaptureTask"], None], logger: Callable[[str], None] = print):
        self.started_at = time.time()
        self._target = target
        self._log = logger
        self._cancel = threading.Event()
        self._error: Optional[Exception] = None
        self._thread = threading.Thread(target=self._run, name="CAPTURE", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        try:
            self._target(self)
        except Exception as e:
            self._error = e
            if not isinstance(e, CaptureCancelled):
                self._log(f"[CAPTURE] Loop died: {e!r}")

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def done(self) -> bool:
        return self._thread.ident is not None and not self._thread.is_alive()

    def cancelled(self) -> bool:
        return self.done() and isinstance(self._error, CaptureCancelled)

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)

    def result(self) -> None:
        self.join()
        if self._error is not None:
            raise self._error


class Simulator:
    """Owns a Thing, its shared state, and the loops that sync it with the service.

    Lock order: ``self.lock`` (room conditions, intervals, run flag) before
    ``self.thing.lock``. Never the other way round.
    """

    def __init__(
        self,
        session,
        camera=None,
        uploader=None,
        *,
        thing: Optional[Thing] = None,
        telemetry_interval_msec: int = config.TELEMETRY_CYCLE_MSEC,
        update_interval_msec: int = config.UPDATE_INTERVAL_MSEC,
        capture_interval_msec: int = config.CAPTURE_INTERVAL_MSEC,
        room_temperature: float = config.ROOM_TEMPERATURE_C,
        room_humidity: float = config.ROOM_HUMIDITY_PCT,
        photo_file_name: str = config.PHOTO_FILE_NAME,
        photo_prefix: str = config.PHOTO_FILE_PREFIX,
        photo_ext: str = config.PHOTO_FILE_EXT,
        receive_wait_sec: float = config.RECEIVE_WAIT_SEC,
        sleep: Callable[[float], None] = time.sleep,
        logger: Callable[[str], None] = print,
    ):
        self._session = session
        self._camera = camera
        self._uploader = uploader
        self._sleep = sleep
        self._log = logger
        self._receive_wait = receive_wait_sec

        self.thing = thing or Thing(
            current_temperature=config.THING_INITIAL_TEMPERATURE_C,
            temperature_step=config.TEMPERATURE_STEP_C,
            humidity_step=config.HUMIDITY_STEP_PCT,
            logger=logger,
        )
        self.update_interval_msec = update_interval_msec

        self.lock = threading.Lock()
        self.room_temperature = room_temperature
        self.room_humidity = room_humidity
        self.telemetry_interval_msec = telemetry_interval_msec
        self.capture_interval_msec = capture_interval_msec
        self.running = False

        self.photo_path = os.path.abspath(photo_file_name + photo_ext)
        self.photo_prefix = photo_prefix or session.device_id
        self.photo_ext = photo_ext

        self.desired_properties_updated = EventHook("desired_properties_updated", logger)
        self.device_method_invoked = EventHook("device_method_invoked", logger)
        self.message_received = EventHook("message_received", logger)

        self._telemetry_thread: Optional[threading.Thread] = None
        self._receive_thread: Optional[threading.Thread] = None
        self._capture_task: Optional[CaptureTask] = None

    # ------------------ lifecycle ------------------

    def initialize(self) -> None:
        self._session.set_config_update_handler(self._on_desired_properties)
        self._session.set_command_handler(self._on_method_invoked)
        self._session.open()

        desired = self._session.get_desired_config()
        if config.TELEMETRY_CYCLE_KEY in desired:
            try:
                interval = parse_interval(desired[config.TELEMETRY_CYCLE_KEY])
            except ConfigParseError as e:
                self._log(f"[SIM] Ignoring desired {config.TELEMETRY_CYCLE_KEY}: {e}")
            else:
                with self.lock:
                    self.telemetry_interval_msec = interval
        with self.lock:
            interval = self.telemetry_interval_msec
        self._log(f"[SIM] Initialized, telemetry every {interval}ms")

    def start(self) -> None:
        with self.lock:
            self.thing.seed(self.room_temperature, self.room_humidity)
            self.running = True
        self.thing.initialize(self.update_interval_msec)

        self._telemetry_thread = threading.Thread(target=self._telemetry_loop, name="TELEMETRY", daemon=True)
        self._telemetry_thread.start()
        self._receive_thread = threading.Thread(target=self._receive_loop, name="RECEIVE", daemon=True)
        self._receive_thread.start()

    def stop(self) -> None:
        # Stops the thing only; the run flag is left alone (see request_stop).
        self.thing.terminate()

    def request_stop(self) -> None:
        with self.lock:
            self.running = False

    def join(self, timeout: Optional[float] = None) -> None:
        for t in (self._telemetry_thread, self._receive_thread):
            if t is not None and t.is_alive():
                t.join(timeout)

    def terminate(self) -> None:
        self._session.close()

    # ------------------ local setters ------------------

    def room(self, temp: float) -> None:
        with self.lock:
            self.room_temperature = temp
            with self.thing.lock:
                if self.thing.status is ThingStatus.STABLE and self.thing.target_temperature != temp:
                    self.thing.target_temperature = temp

    def humidity(self, hum: float) -> None:
        with self.lock:
            self.room_humidity = hum
            with self.thing.lock:
                self.thing.target_humidity = hum

    def change_capture_interval(self, interval_msec: int) -> None:
        with self.lock:
            self.capture_interval_msec = interval_msec

    def snapshot(self) -> dict:
        with self.lock:
            data = {
                "room_temperature": self.room_temperature,
                "room_humidity": self.room_humidity,
                "telemetry_interval_msec": self.telemetry_interval_msec,
                "capture_interval_msec": self.capture_interval_msec,
                "running": self.running,
            }
        task = self._capture_task
        data["capturing"] = task is not None and not task.done()
        data["thing"] = self.thing.read().to_dict()
        return data

    # ------------------ outbound ------------------

    def send_event(self, msg: str) -> None:
        self._session.publish(encode(envelope(classify(msg))))

    def update_reported_properties(self, doc: str) -> None:
        try:
            props = parse_object(doc)
        except ValueError as e:
            raise ConfigParseError(f"reported properties must be a JSON object: {e}") from e
        self._session.report_state(props)

    # ------------------ loops ------------------

    def _telemetry_loop(self) -> None:
        while True:
            with self.lock:
                if not self.running:
                    break

            body = encode(envelope(Structured(self.thing.read().to_dict())))
            try:
                self._session.publish(body)
            except TransportError as e:
                self._log(f"[SIM] Telemetry publish failed: {e}")

            with self.lock:
                if not self.running:
                    break
                interval = self.telemetry_interval_msec
            self._sleep(interval / 1000.0)

        self._log("[SIM] Telemetry loop stopped")

    def _receive_loop(self) -> None:
        while True:
            try:
                msg = self._session.receive_next(self._receive_wait)
            except TransportError as e:
                self._log(f"[SIM] Receive failed: {e}")
                msg = None
                self._sleep(self._receive_wait)

            if msg is not None:
                self.message_received.fire(msg)
                try:
                    self._session.acknowledge(msg)
                except TransportError as e:
                    self._log(f"[SIM] Acknowledge failed: {e}")

            with self.lock:
                if not self.running:
                    break

        self._log("[SIM] Receive loop stopped")

    # ------------------ capture ------------------

    def start_capture(self, interval_msec: Optional[int] = None) -> CaptureTask:
        if self._camera is None or self._uploader is None:
            raise RuntimeError("capture needs a camera and an uploader")

        with self.lock:
            if self._capture_task is not None and not self._capture_task.done():
                raise RuntimeError("capture is already running")
            if interval_msec is not None:
                self.capture_interval_msec = interval_msec
            task = CaptureTask(self._capture_loop, self._log)
            self._capture_task = task
        task.start()
        return task

    def end_capture(self, task: Optional[CaptureTask] = None) -> None:
        task = task or self._capture_task
        if task is None or task.done():
            return

        try:
            task.cancel()
            task.result()
        except CaptureCancelled:
            self._log("[CAPTURE] Photo taking stopped.")
        except Exception as e:
            self._log(f"[CAPTURE] Photo taking stopped: {e}")

    def _capture_loop(self, task: CaptureTask) -> None:
        while True:
            now = datetime.now()
            try:
                frame = self._camera.capture_frame()
                self._camera.write_to_path(frame, self.photo_path)
                name = f"{self.photo_prefix}{now.strftime('%Y%m%d%H%M%S')}{self.photo_ext}"
                self._uploader.upload(name, self.photo_path)
            except CaptureError as e:
                self._log(f"[CAPTURE] Cycle skipped: {e}")
            except TransportError as e:
                self._log(f"[CAPTURE] Upload failed: {e}")

            with self.lock:
                interval = self.capture_interval_msec
            self._sleep(interval / 1000.0)

            if task.cancel_requested:
                break

        raise CaptureCancelled("photo taking cancelled")

    # ------------------ remote callbacks ------------------

    def _on_method_invoked(self, request: MethodRequest) -> MethodResponse:
        try:
            self.device_method_invoked.fire_async(request)
        except Exception as e:
            self._log(f"[SIM] Method observer dispatch failed: {e}")

        result = {"status": "OK", "invokedTime": now_iso()}
        return MethodResponse(payload=encode(result), status=200)

    def _on_desired_properties(self, desired: dict) -> None:
        self.desired_properties_updated.fire(desired)

        if config.TELEMETRY_CYCLE_KEY in desired:
            try:
                interval = parse_interval(desired[config.TELEMETRY_CYCLE_KEY])
            except ConfigParseError as e:
                self._log(f"[SIM] Ignoring desired {config.TELEMETRY_CYCLE_KEY}: {e}")
            else:
                with self.lock:
                    self.telemetry_interval_msec = interval
                self._log(f"[SIM] Telemetry cycle set to {interval}ms")

        try:
            self._session.report_state({config.DESIRED_RECEIVED_AT_KEY: now_iso()})
        except Exception as e:
            self._log(f"[SIM] Report after desired change failed: {e}")
