# thing_sim/main.py

import argparse
import random
import threading
import time

from . import config
from .blob_upload import DirectoryUploader, HttpBlobUploader
from .camera import Camera, SyntheticCamera
from .errors import TransportError
from .mqtt_session import MqttSession
from .simulator import Simulator
from .web import create_app


def main() -> None:
    parser = argparse.ArgumentParser(description="Connected thing simulator")
    parser.add_argument("--mode", choices=["normal", "capture"], default="normal")
    parser.add_argument("--connection", default=config.CONNECTION_STRING)
    parser.add_argument("--room-temp", type=float, default=config.ROOM_TEMPERATURE_C)
    parser.add_argument("--humidity", type=float, default=config.ROOM_HUMIDITY_PCT)
    parser.add_argument("--drift", action="store_true", help="random-walk the room conditions")
    parser.add_argument("--web-port", type=int, default=None)
    parser.add_argument("--synthetic-camera", action="store_true")
    args = parser.parse_args()

    try:
        session = MqttSession.from_connection_string(
            args.connection,
            base_topic=config.MQTT_BASE_TOPIC,
            port=config.MQTT_PORT,
            keepalive_sec=config.MQTT_KEEPALIVE_SEC,
            desired_wait_sec=config.DESIRED_WAIT_SEC,
        )
    except ValueError as e:
        raise SystemExit(f"[SIM] invalid connection string: {e}") from e

    camera = None
    uploader = None
    if args.mode == "capture":
        camera = SyntheticCamera() if args.synthetic_camera else Camera(config.CAMERA_INDEX)
        if config.UPLOAD_URL:
            uploader = HttpBlobUploader(config.UPLOAD_URL, timeout_s=config.UPLOAD_TIMEOUT_SEC)
        else:
            uploader = DirectoryUploader(config.UPLOAD_DIR)

    sim = Simulator(
        session,
        camera,
        uploader,
        room_temperature=args.room_temp,
        room_humidity=args.humidity,
    )
    sim.message_received.subscribe(lambda m: print(f"[SIM] Message on {m.topic}: {m.text()[:200]}"))
    sim.device_method_invoked.subscribe(lambda r: print(f"[SIM] Method invoked: {r.name}"))
    sim.desired_properties_updated.subscribe(lambda d: print(f"[SIM] Desired update: {d}"))

    try:
        sim.initialize()
    except TransportError as e:
        raise SystemExit(f"[SIM] {e}") from e
    sim.start()

    task = sim.start_capture() if args.mode == "capture" else None

    if args.web_port is not None:
        app = create_app(sim)
        threading.Thread(
            target=app.run,
            kwargs={"host": config.WEB_HOST, "port": args.web_port, "debug": False, "use_reloader": False},
            name="WEB",
            daemon=True,
        ).start()
        print(f"[SIM] Control panel on http://{config.WEB_HOST}:{args.web_port}")

    print(f"[SIM] Running as {session.device_id}.")

    temp = args.room_temp
    hum = args.humidity
    try:
        while True:
            time.sleep(5)
            if args.drift:
                temp = round(temp + random.uniform(-0.5, 0.5), 2)
                hum = round(min(100.0, max(0.0, hum + random.uniform(-2.0, 2.0))), 1)
                sim.room(temp)
                sim.humidity(hum)
    except KeyboardInterrupt:
        pass
    finally:
        sim.stop()
        sim.request_stop()
        sim.end_capture(task)
        sim.join(timeout=2.0)
        if camera is not None:
            camera.release()
        sim.terminate()
        print("[SIM] Stopped.")


if __name__ == "__main__":
    main()
