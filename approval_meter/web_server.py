import json
import math
import time
from typing import Optional

from flask import Flask, Response, jsonify, render_template_string, request

from . import display
from .errors import AcquisitionError
from .sampling_session import SamplingSession, SessionSnapshot

# keep the 50 most recent log lines
MAX_LOGS = 50
log_history = []

# session driven by this dashboard, see set_session()
_session: Optional[SamplingSession] = None

app = Flask(__name__)

HTML_PAGE = """
<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>Applause Approval Meter</title>
    <style>
        body { font-family: Arial, sans-serif; padding: 20px; background: #f0f2f5; }
        .panel { width: 640px; background: white; border-radius: 8px; padding: 16px;
                 margin-bottom: 16px; box-shadow: 0px 2px 5px rgba(0,0,0,0.15); }
        #bar { height: 24px; background: #ddd; border-radius: 12px; position: relative; overflow: hidden; }
        #level { height: 100%; width: 0%; }
        #marker { position: absolute; top: 0; bottom: 0; width: 3px; background: #1e3a8a; }
        .green { background: #22c55e; } .yellow { background: #eab308; } .red { background: #ef4444; }
        #verdict { font-size: 28px; font-weight: bold; }
        .log-entry { font-size: 13px; border-left: 4px solid #4CAF50; padding: 4px 8px; margin: 4px 0; }
    </style>
</head>
<body>
    <h2>Applause Approval Meter</h2>

    <div class="panel">
        <label>Occupancy <input id="occupancy" type="number" min="0"></label>
        <button onclick="setOccupancy()">Set</button>
        <button onclick="post('/api/start')">Start</button>
        <button onclick="post('/api/stop')">Stop</button>
        <div id="required"></div>
        <div id="error" style="color: #b91c1c"></div>
    </div>

    <div class="panel">
        <div id="bar"><div id="marker"></div><div id="level"></div></div>
        <div>Current: <span id="current">N/A</span> &nbsp; Peak: <span id="peak">N/A</span></div>
        <div id="verdict"></div>
    </div>

    <div class="panel" id="log-container"></div>

    <script>
        function post(url, body) {
            return fetch(url, {
                method: "POST",
                headers: {"Content-Type": "application/json"},
                body: JSON.stringify(body || {})
            }).then(r => r.json()).then(data => {
                document.getElementById("error").innerText = data.error || "";
            });
        }

        function setOccupancy() {
            const value = Number(document.getElementById("occupancy").value);
            post("/api/occupancy", {occupancy: value});
        }

        const evtSource = new EventSource("/stream");

        evtSource.onmessage = function(event) {
            const data = JSON.parse(event.data);
            const s = data.state;
            if (s) {
                const level = document.getElementById("level");
                level.style.width = s.display.level_percent + "%";
                level.className = s.display.level_color;
                document.getElementById("marker").style.left = s.display.marker_percent + "%";
                document.getElementById("current").innerText = s.display.current;
                document.getElementById("peak").innerText = s.display.peak;
                document.getElementById("required").innerText = s.required_level > 0
                    ? "Required: " + s.required_level.toFixed(2) + " dB (" + s.density.toFixed(4) + " people/m³)"
                    : "Enter the occupancy to set the threshold";
                const verdict = {approved: "APPROVED", rejected: "REJECTED", undetermined: ""};
                document.getElementById("verdict").innerText = verdict[s.approval];
                if (s.last_error) {
                    document.getElementById("error").innerText = s.last_error;
                }
            }

            const container = document.getElementById("log-container");
            container.innerHTML = "";
            data.logs.forEach(function(line) {
                const div = document.createElement("div");
                div.className = "log-entry";
                div.innerText = line;
                container.appendChild(div);
            });
        };
    </script>
</body>
</html>
"""


def set_session(session: Optional[SamplingSession]) -> None:
    global _session
    _session = session


def set_log(msg: str):
    global log_history
    log_history.append(msg)

    if len(log_history) > MAX_LOGS:
        log_history = log_history[-MAX_LOGS:]


def _finite(value: Optional[float]) -> Optional[float]:
    # JSON has no infinity
    if value is None or math.isinf(value) or math.isnan(value):
        return None
    return value


def snapshot_to_dict(snapshot: SessionSnapshot) -> dict:
    return {
        "running": snapshot.running,
        "latest_reading": _finite(snapshot.latest_reading),
        "peak_level": _finite(snapshot.peak_level),
        "approval": snapshot.approval.value,
        "required_level": snapshot.required_level,
        "occupancy": snapshot.occupancy,
        "density": snapshot.density,
        "cycles": snapshot.cycles,
        "last_error": snapshot.last_error,
        "display": {
            "current": display.format_db(snapshot.latest_reading),
            "peak": display.format_db(
                snapshot.peak_level if snapshot.latest_reading is not None else None
            ),
            "level_percent": display.meter_percent(snapshot.latest_reading),
            "level_color": display.meter_color(snapshot.latest_reading),
            "marker_percent": display.marker_percent(snapshot.required_level),
            "current_clamped": display.clamp_db(snapshot.latest_reading),
        },
    }


def _state_dict() -> Optional[dict]:
    if _session is None:
        return None
    return snapshot_to_dict(_session.snapshot())


def _no_session():
    return jsonify({"error": "no session attached"}), 503


@app.route("/")
def index():
    return render_template_string(HTML_PAGE)


@app.route("/api/state")
def state():
    if _session is None:
        return _no_session()
    return jsonify(_state_dict())


@app.route("/api/occupancy", methods=["POST"])
def set_occupancy():
    if _session is None:
        return _no_session()
    payload = request.get_json(silent=True) or {}
    value = payload.get("occupancy")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        return jsonify({"error": "occupancy must be a whole number"}), 400
    try:
        _session.occupancy = int(value)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    set_log(f"Occupancy set to {_session.occupancy}")
    return jsonify(_state_dict())


@app.route("/api/start", methods=["POST"])
def start():
    if _session is None:
        return _no_session()
    if _session.occupancy <= 0:
        return jsonify({"error": "set the occupancy before starting"}), 409
    try:
        _session.start()
    except AcquisitionError as e:
        set_log(f"Microphone unavailable: {e}")
        return jsonify({"error": str(e)}), 503
    set_log(f"Measurement started for {_session.occupancy} people")
    return jsonify(_state_dict())


@app.route("/api/stop", methods=["POST"])
def stop():
    if _session is None:
        return _no_session()
    _session.stop()
    return jsonify(_state_dict())


@app.route("/stream")
def stream():
    def event_stream():
        last_payload = None
        while True:
            payload = json.dumps({"state": _state_dict(), "logs": list(log_history)})
            if payload != last_payload:
                last_payload = payload
                yield f"data: {payload}\n\n"
            time.sleep(1)

    return Response(event_stream(), mimetype="text/event-stream")
