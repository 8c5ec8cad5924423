# app.py
from flask import Flask, jsonify, request
from flask_cors import CORS
import logging
import os
from datetime import datetime, timezone

from notifications.channels import EmailChannel
from notifications.config import RelaySettings
from notifications.errors import InternalError, ValidationError
from notifications.service import build_dispatcher, parse_request

LOGGER = logging.getLogger(__name__)

app = Flask(__name__)

# ------------------------------- Config -------------------------------
SETTINGS = RelaySettings.from_env()
DISPATCHER = build_dispatcher(SETTINGS)

DEBUG = SETTINGS.diagnostics
PORT = int(os.getenv("PORT", "8001"))
HOST = os.getenv("HOST", "127.0.0.1")


# ------------------------------- CORS -------------------------------
CORS(
    app,
    resources={r"/api/*": {"origins": list(SETTINGS.cors_origins)}},
    supports_credentials=True,
    methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


# ------------------------------- Errors -------------------------------
@app.errorhandler(ValidationError)
def handle_validation_error(exc: ValidationError):
    LOGGER.warning("Rejected notification request: %s", exc.message)
    return jsonify({"success": False, "message": exc.message}), exc.status_code


@app.errorhandler(InternalError)
def handle_internal_error(exc: InternalError):
    body = {
        "success": False,
        "message": "An internal server error occurred while processing the notification.",
    }
    if SETTINGS.diagnostics:
        body["error"] = exc.message
    return jsonify(body), exc.status_code


# ------------------------------- Routes -------------------------------
@app.route("/api/send-notification", methods=["POST"])
def send_notification():
    try:
        notification = parse_request(request.get_json(silent=True))
        outcome = DISPATCHER.dispatch(notification)
    except ValidationError:
        raise
    except Exception as exc:
        LOGGER.exception("Unhandled error in /api/send-notification")
        raise InternalError(str(exc) or exc.__class__.__name__) from exc
    return jsonify(outcome.to_dict()), outcome.status_code


@app.route("/api/health")
def health():
    return jsonify({
        "success": True,
        "message": "Notification relay is running",
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    })


@app.route("/api/notifications/status")
def notification_status():
    return jsonify({"success": True, "services": DISPATCHER.service_status()})


def log_startup() -> None:
    LOGGER.info("Notification relay listening on http://%s:%s", HOST, PORT)
    for name, state in DISPATCHER.service_status().items():
        LOGGER.info("%s service: %s", name.capitalize(), state)
    email = DISPATCHER.channels.get("email")
    if isinstance(email, EmailChannel) and email.service_configured:
        email.verify()
    elif not SETTINGS.email_configured:
        LOGGER.warning("EMAIL_USER or EMAIL_PASS is not set; email notifications will be skipped")


# ------------- Run -------------
if __name__ == "__main__":
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    log_startup()
    app.run(host=HOST, port=PORT, debug=DEBUG)
