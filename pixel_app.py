from typing import Any, Mapping, Optional

from flask import Blueprint, Flask, current_app, has_request_context, jsonify, request

from pixel_config import load_settings, settings_from_mapping
from pixel_service import ErrorKind, FacebookPixelService, SubmitResult

EXTENSION_NAME = "facebookpixel"


class FacebookPixel:
    """
    Registers one shared FacebookPixelService on a Flask app.

        pixel = FacebookPixel(app)
        # or, with an app factory
        pixel = FacebookPixel()
        pixel.init_app(app)
    """

    def __init__(self, app: Optional[Flask] = None, http=None):
        self._http = http
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> FacebookPixelService:
        if any(key.startswith("FACEBOOK_PIXEL_") for key in app.config):
            settings = settings_from_mapping(app.config)
        else:
            settings = load_settings()

        service = FacebookPixelService(settings, http=self._http)
        app.extensions[EXTENSION_NAME] = service
        return service


def get_pixel() -> FacebookPixelService:
    try:
        return current_app.extensions[EXTENSION_NAME]
    except KeyError:
        raise RuntimeError("FacebookPixel is not registered on this app; call init_app() first") from None


def track_event(event: Mapping[str, Any]) -> SubmitResult:
    """Submit an event, filling in page URL, IP and user agent from the current request."""
    event = dict(event)
    if has_request_context():
        event.setdefault("event_source_url", request.url)
        event.setdefault("client_ip_address", request.access_route[0] if request.access_route else request.remote_addr)
        event.setdefault("client_user_agent", request.user_agent.string)
    return get_pixel().submit(event)


pixel_blueprint = Blueprint("facebookpixel", __name__)


@pixel_blueprint.post("/pixel/events")
def pixel_event():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return jsonify({"status": "error", "kind": ErrorKind.INVALID_INPUT.value,
                        "message": "Expected a JSON object"}), 400

    # Prefer the page that posted the event; track_event falls back to this URL
    if request.referrer:
        body.setdefault("event_source_url", request.referrer)
    result = track_event(body)
    if result.ok:
        return jsonify({"status": "ok", "fb": result.response}), 200

    status = 400 if result.error.kind is ErrorKind.INVALID_INPUT else 502
    return jsonify({"status": "error", "kind": result.error.kind.value,
                    "message": result.error.message}), status
