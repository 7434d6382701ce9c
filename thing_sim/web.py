# thing_sim/web.py

from flask import Flask, jsonify, request

from .errors import ConfigParseError, TransportError


def _number(body: dict, key: str):
    value = body.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def create_app(simulator) -> Flask:
    app = Flask(__name__)

    @app.route("/api/state")
    def api_state():
        return jsonify(simulator.snapshot())

    @app.route("/api/room", methods=["POST"])
    def api_room():
        body = request.get_json(silent=True) or {}
        temp = _number(body, "temperature")
        if temp is None:
            return jsonify({"error": "missing number 'temperature'"}), 400
        simulator.room(temp)
        return jsonify({"room_temperature": temp})

    @app.route("/api/humidity", methods=["POST"])
    def api_humidity():
        body = request.get_json(silent=True) or {}
        hum = _number(body, "humidity")
        if hum is None:
            return jsonify({"error": "missing number 'humidity'"}), 400
        simulator.humidity(hum)
        return jsonify({"room_humidity": hum})

    @app.route("/api/capture_interval", methods=["POST"])
    def api_capture_interval():
        body = request.get_json(silent=True) or {}
        msec = body.get("msec")
        if isinstance(msec, bool) or not isinstance(msec, int) or msec < 0:
            return jsonify({"error": "missing non-negative integer 'msec'"}), 400
        simulator.change_capture_interval(msec)
        return jsonify({"capture_interval_msec": msec})

    @app.route("/api/event", methods=["POST"])
    def api_event():
        body = request.get_json(silent=True) or {}
        message = body.get("message")
        if not isinstance(message, str):
            return jsonify({"error": "missing string 'message'"}), 400
        try:
            simulator.send_event(message)
            return jsonify({"sent": True})
        except TransportError as e:
            print("[WEB] ERROR in /api/event:", e)
            return jsonify({"error": str(e)}), 500

    @app.route("/api/reported", methods=["POST"])
    def api_reported():
        try:
            simulator.update_reported_properties(request.get_data(as_text=True))
            return jsonify({"reported": True})
        except ConfigParseError as e:
            return jsonify({"error": str(e)}), 400
        except TransportError as e:
            print("[WEB] ERROR in /api/reported:", e)
            return jsonify({"error": str(e)}), 500

    return app
