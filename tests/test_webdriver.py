import pytest
import requests

from gmaps_coords.vendors import webdriver


class DummyResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class DummyHttp:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, json=None, timeout=None):
        self.calls.append((method, url, json, timeout))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_session(*responses):
    http = DummyHttp(responses)
    return webdriver.WebDriverSession("http://localhost:4444/", http=http, timeout=5), http


def test_start_posts_capabilities_and_stores_session_id():
    session, http = make_session(DummyResponse(payload={"value": {"sessionId": "abc", "capabilities": {}}}))

    assert session.start({"browserName": "firefox"}) == "abc"

    method, url, body, timeout = http.calls[0]
    assert method == "POST"
    assert url == "http://localhost:4444/session"
    assert body == {"capabilities": {"alwaysMatch": {"browserName": "firefox"}}}
    assert timeout == 5
    assert session.session_id == "abc"


def test_start_without_session_id_raises():
    session, _ = make_session(DummyResponse(payload={"value": {}}))
    with pytest.raises(webdriver.WebDriverError):
        session.start({})


def test_navigate_and_current_url():
    session, http = make_session(
        DummyResponse(payload={"value": {"sessionId": "s1"}}),
        DummyResponse(payload={"value": None}),
        DummyResponse(payload={"value": "https://maps.example/@1.5,2.5,17z"}),
    )
    session.start({})
    session.navigate("https://maps.example/?q=x")

    assert session.current_url() == "https://maps.example/@1.5,2.5,17z"
    assert http.calls[1][1] == "http://localhost:4444/session/s1/url"
    assert http.calls[1][2] == {"url": "https://maps.example/?q=x"}
    assert http.calls[2][0] == "GET"


def test_error_payload_carries_w3c_error_code():
    session, _ = make_session(
        DummyResponse(payload={"value": {"sessionId": "s1"}}),
        DummyResponse(status_code=500, payload={"value": {"error": "timeout", "message": "page load"}}),
    )
    session.start({})

    with pytest.raises(webdriver.WebDriverError) as excinfo:
        session.navigate("https://maps.example")

    assert excinfo.value.error == "timeout"
    assert "page load" in str(excinfo.value)


def test_transport_errors_are_wrapped():
    session, _ = make_session(requests.ConnectionError("refused"))

    with pytest.raises(webdriver.WebDriverError) as excinfo:
        session.start({})

    assert excinfo.value.error == "unknown error"


def test_commands_without_session_raise():
    session, http = make_session()
    with pytest.raises(webdriver.WebDriverError):
        session.current_url()
    assert http.calls == []


def test_quit_deletes_session_and_is_idempotent():
    session, http = make_session(
        DummyResponse(payload={"value": {"sessionId": "s1"}}),
        DummyResponse(payload={"value": None}),
    )
    session.start({})
    session.quit()
    session.quit()

    assert http.calls[-1][:2] == ("DELETE", "http://localhost:4444/session/s1")
    assert len(http.calls) == 2
    assert session.session_id is None
