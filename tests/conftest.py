import threading

import pytest
import requests

from pixel_config import PixelSettings


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self.text is not None:
            raise requests.exceptions.JSONDecodeError("Expecting value", self.text, 0)
        return self._payload


class RecordingHttp:
    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []
        self._lock = threading.Lock()

    def post(self, url, json=None, timeout=None):
        with self._lock:
            self.calls.append({"url": url, "json": json, "timeout": timeout})
            response = self.responses.pop(0) if self.responses else FakeResponse(200, {"events_received": 1})
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def settings():
    return PixelSettings(
        access_token="EAAB-test-token",
        pixel_id="777472967223169",
        test_event_code="TEST90305",
        environment="local",
    )


@pytest.fixture
def event():
    return {
        "event_name": "Purchase",
        "event_time": 1764780314,
        "event_id": "order-1001",
        "phone": "+8801700000000",
        "userID": "42",
        "fbp": "fb.1.1596403881668.1116446470",
        "value": 1250,
        "content_ids": ["sku-1", "sku-2"],
        "content_type": "product",
        "order_id": "1001",
        "client_ip_address": "203.0.113.10",
        "client_user_agent": "Mozilla/5.0",
    }
