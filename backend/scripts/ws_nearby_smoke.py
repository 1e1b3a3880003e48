"""End-to-end smoke check for nearby report notifications.

Prerequisites:
1. `python manage.py runserver` (daphne) must be running.
2. Install dependencies once: `pip install requests websocket-client`.

The script will:
- Ensure a demo reporter and volunteer exist (auto-register if missing).
- Open the volunteer's WebSocket (JWT in the querystring) and report a location.
- Create a report next to the volunteer via REST and wait for `new_report`.
"""

from __future__ import annotations

import json
import os
import queue
import threading
from typing import Dict

import requests
import websocket  # type: ignore

BASE_URL = os.environ.get("RESCUE_BASE_URL", "http://127.0.0.1:8000")
API_ROOT = f"{BASE_URL}/api"
REPORTS_API = f"{API_ROOT}/reports"
AUTH_API = f"{API_ROOT}/auth"

REPORTER_CREDS = {
    "username": "ws_demo_reporter",
    "password": "demo12345",
}

VOLUNTEER_CREDS = {
    "username": "ws_demo_volunteer",
    "password": "demo12345",
}

REPORT_COORDS = {"latitude": 18.52, "longitude": 73.85}
VOLUNTEER_COORDS = {"lat": 18.521, "lng": 73.851}


def _login_or_register(session: requests.Session, payload: Dict) -> Dict:
    login_resp = session.post(f"{AUTH_API}/login/", json=payload, timeout=10)

    if login_resp.status_code != 200:
        register_body = {
            **payload,
            "email": f"{payload['username']}@example.com",
        }
        reg_resp = session.post(f"{AUTH_API}/register/", json=register_body, timeout=10)
        reg_resp.raise_for_status()
        login_resp = session.post(f"{AUTH_API}/login/", json=payload, timeout=10)

    login_resp.raise_for_status()
    data = login_resp.json()
    token = data["tokens"]["access"]
    session.headers.update({"Authorization": f"Bearer {token}"})
    return {**data["user"], "access": token}


def _open_volunteer_socket(token: str, ready_evt: threading.Event, queue_out: queue.Queue) -> None:
    ws_url = BASE_URL.replace("http", "ws") + f"/ws/rescue/?token={token}"

    def on_open(ws):  # type: ignore[no-untyped-def]
        print("[WS] Connected, sending location")
        ws.send(json.dumps({"type": "set_location", **VOLUNTEER_COORDS}))

    def on_message(ws, message):  # type: ignore[no-untyped-def]
        payload = json.loads(message)
        print(f"[WS] Received payload: {payload}")
        if payload.get("type") == "location_updated":
            ready_evt.set()
        elif payload.get("type") == "new_report":
            queue_out.put(payload)
            ws.close()

    def on_error(ws, error):  # type: ignore[no-untyped-def]
        print(f"[WS] Error: {error}")
        ready_evt.set()

    def on_close(_ws, *_):  # type: ignore[no-untyped-def]
        print("[WS] Connection closed")

    ws_app = websocket.WebSocketApp(
        ws_url,
        on_open=on_open,
        on_message=on_message,
        on_error=on_error,
        on_close=on_close,
    )

    ws_app.run_forever()


def _create_report(reporter_session: requests.Session) -> Dict:
    body = {
        "title": "Injured dog near the station",
        "description": "Limping, left hind leg",
        "severity": "high",
        **REPORT_COORDS,
    }
    resp = reporter_session.post(f"{REPORTS_API}/", json=body, timeout=10)
    resp.raise_for_status()
    data = resp.json()
    print(f"[HTTP] Report created: #{data['report']['id']}")
    return data


def main() -> None:
    reporter_session = requests.Session()
    volunteer_session = requests.Session()

    print("[HTTP] Logging in / registering demo accounts ...")
    reporter = _login_or_register(reporter_session, REPORTER_CREDS)
    volunteer = _login_or_register(volunteer_session, VOLUNTEER_CREDS)
    print(f"[HTTP] Reporter #{reporter['id']} + Volunteer #{volunteer['id']} ready")

    ready_evt = threading.Event()
    message_queue: queue.Queue = queue.Queue()
    ws_thread = threading.Thread(
        target=_open_volunteer_socket,
        args=(volunteer["access"], ready_evt, message_queue),
        daemon=True,
    )
    ws_thread.start()

    if not ready_evt.wait(timeout=5):
        raise TimeoutError("Volunteer WebSocket failed to join a cell within 5 seconds")

    _create_report(reporter_session)

    try:
        payload = message_queue.get(timeout=30)
        report = payload.get("data", {})
        print("[RESULT] Volunteer received report", report.get("id"), "status=", report.get("status"))
    except queue.Empty:
        raise TimeoutError("Volunteer WebSocket did not receive new_report within 30 seconds")

    print("[DONE] End-to-end nearby notification check completed.")


if __name__ == "__main__":
    main()
