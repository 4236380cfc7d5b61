"""
Server-side Facebook Pixel events through the Conversions API.

One call to FacebookPixelService.submit() sends one event:

    service = FacebookPixelService(load_settings())
    result = service.submit({
        "event_name": "Purchase",
        "event_time": int(time.time()),
        "event_id": "order-1001",       # same id as the browser Pixel, for dedup
        "phone": "+8801700000000",      # hashed before sending
        "userID": "42",                 # hashed before sending
        "fbp": "fb.1.1596403881668.1116446470",
        "value": 1250,
        "content_ids": ["sku-1"],
        "content_type": "product",
        "order_id": "1001",
    }, source_url="https://shop.example.com/checkout")
"""
import enum
import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import requests

from pixel_config import PixelSettings

logger = logging.getLogger(__name__)

GRAPH_URL = "https://graph.facebook.com"
DEFAULT_CURRENCY = "BDT"
ACTION_SOURCE = "website"

REQUIRED_FIELDS = (
    "event_name",
    "event_time",
    "event_id",
    "phone",
    "userID",
    "fbp",
    "value",
    "content_ids",
    "content_type",
    "order_id",
)


class InvalidEventError(ValueError):
    pass


class ErrorKind(str, enum.Enum):
    INVALID_INPUT = "invalid_input"
    TRANSPORT = "transport"
    REMOTE = "remote"
    DECODE = "decode"


@dataclass(frozen=True)
class SubmitError:
    kind: ErrorKind
    message: str
    status_code: Optional[int] = None
    details: Optional[dict] = None


@dataclass(frozen=True)
class SubmitResult:
    response: Optional[dict] = None
    error: Optional[SubmitError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, response: dict) -> "SubmitResult":
        return cls(response=response)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, **extra) -> "SubmitResult":
        return cls(error=SubmitError(kind=kind, message=message, **extra))


def hash_identifier(value: Any) -> str:
    """SHA-256 hex digest (64 chars) of the value's UTF-8 text."""
    return hashlib.sha256(str(value).encode("utf-8")).hexdigest()


def _user_id(event: Mapping[str, Any]) -> Any:
    if "userID" in event:
        return event["userID"]
    return event.get("user_id")


def _check_required(event: Mapping[str, Any]) -> None:
    missing = []
    for name in REQUIRED_FIELDS:
        value = _user_id(event) if name == "userID" else event.get(name)
        if value is None:
            missing.append(name)
    if missing:
        raise InvalidEventError(f"Missing required event fields {missing}")


def build_event(event: Mapping[str, Any], source_url: Optional[str] = None) -> dict:
    """
    Map one application event onto a Conversions API event record.
    Args:
        event: the event fields (see REQUIRED_FIELDS; currency,
            client_ip_address, client_user_agent and event_source_url are optional)
        source_url: page the event happened on, used when the event has no
            event_source_url of its own
    Returns:
        Dict ready to go inside the request's "data" list
    """
    _check_required(event)

    return {
        "event_name": event["event_name"],
        "event_time": event["event_time"],
        "event_id": event["event_id"],
        "user_data": {
            "ph": hash_identifier(event["phone"]),
            "external_id": hash_identifier(_user_id(event)),
            "fbp": event["fbp"],
            "client_ip_address": event.get("client_ip_address"),
            "client_user_agent": event.get("client_user_agent"),
        },
        "custom_data": {
            "currency": DEFAULT_CURRENCY if event.get("currency") is None else event["currency"],
            "value": event["value"],
            "content_ids": event["content_ids"],
            "content_type": event["content_type"],
            "order_number": event["order_id"],
        },
        "event_source_url": event.get("event_source_url") or source_url,
        "action_source": ACTION_SOURCE,
    }


class FacebookPixelService:
    def __init__(self, settings: PixelSettings, http=None):
        # http: anything with requests' post(url, json=..., timeout=...)
        self.settings = settings
        self._http = http if http is not None else requests

    @property
    def endpoint(self) -> str:
        return f"{GRAPH_URL}/{self.settings.api_version}/{self.settings.pixel_id}/events"

    def build_payload(self, event: Mapping[str, Any], source_url: Optional[str] = None) -> dict:
        payload = {
            "access_token": self.settings.access_token,
            "data": [build_event(event, source_url)],
        }
        test_event_code = self.settings.active_test_event_code
        if test_event_code:
            payload["test_event_code"] = test_event_code
        return payload

    def submit(self, event: Mapping[str, Any], source_url: Optional[str] = None) -> SubmitResult:
        try:
            payload = self.build_payload(event, source_url)
        except InvalidEventError as e:
            return self._fail(ErrorKind.INVALID_INPUT, str(e))

        logger.debug("Sending %s event %s to pixel %s",
                     payload["data"][0]["event_name"], payload["data"][0]["event_id"],
                     self.settings.pixel_id)
        try:
            resp = self._http.post(self.endpoint, json=payload, timeout=self.settings.timeout)
        except requests.exceptions.InvalidJSONError as e:
            return self._fail(ErrorKind.INVALID_INPUT, f"Event is not JSON serializable: {e}")
        except requests.RequestException as e:
            return self._fail(ErrorKind.TRANSPORT, str(e))
        except (TypeError, ValueError) as e:
            return self._fail(ErrorKind.INVALID_INPUT, f"Event is not JSON serializable: {e}")

        rejected = not 200 <= resp.status_code < 300
        try:
            body = resp.json()
        except ValueError as e:
            if rejected:
                return self._fail(ErrorKind.REMOTE, f"HTTP {resp.status_code}",
                                  status_code=resp.status_code)
            return self._fail(ErrorKind.DECODE, f"Invalid JSON response: {e}",
                              status_code=resp.status_code)

        if rejected:
            message = f"HTTP {resp.status_code}"
            if isinstance(body, dict) and isinstance(body.get("error"), dict):
                message = body["error"].get("message") or message
            return self._fail(ErrorKind.REMOTE, message, status_code=resp.status_code,
                              details=body if isinstance(body, dict) else None)

        if not isinstance(body, dict):
            return self._fail(ErrorKind.DECODE, "Response body is not a JSON object",
                              status_code=resp.status_code)
        return SubmitResult.success(body)

    def send_event(self, event: Mapping[str, Any], source_url: Optional[str] = None) -> Optional[dict]:
        """Decoded response, or None when the event could not be delivered."""
        return self.submit(event, source_url).response

    def _fail(self, kind: ErrorKind, message: str, **extra) -> SubmitResult:
        logger.error("Facebook Pixel API Error: %s", message)
        return SubmitResult.failure(kind, message, **extra)
