"""
Tests for the Relay HTTP client.

The requests session is a Mock, so these check request construction and
error handling without touching the network.
"""

import json

import pytest
import requests
from unittest.mock import Mock

from gasless.config import ConfigError, RelayApiConfig
from gasless.core.relay import RelayApiError, RelayClient


def _response(status_code=200, payload=None, text=""):
    response = Mock()
    response.status_code = status_code
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload if payload is not None else {}
    response.text = text
    return response


def _client(api_key="test-key"):
    session = Mock()
    session.headers = {}
    config = RelayApiConfig(base_url="https://api.relay.link", api_key=api_key, timeout=30, referrer="relay.link")
    return RelayClient(config, session=session), session


def test_session_headers_are_json():
    _, session = _client()
    assert session.headers["Content-Type"] == "application/json"
    assert session.headers["Accept"] == "application/json"


def test_get_quote_posts_to_v2_with_bearer():
    client, session = _client()
    session.post.return_value = _response(payload={"steps": []})

    result = client.get_quote({"amount": "1"})

    assert result == {"steps": []}
    args, kwargs = session.post.call_args
    assert args[0] == "https://api.relay.link/quote/v2"
    assert kwargs["headers"] == {"Authorization": "Bearer test-key"}
    assert json.loads(kwargs["data"]) == {"amount": "1"}
    assert kwargs["timeout"] == 30


def test_get_quote_without_key_sends_no_auth_and_honours_path():
    client, session = _client(api_key=None)
    session.post.return_value = _response(payload={})

    client.get_quote({}, path="/quote")

    args, kwargs = session.post.call_args
    assert args[0] == "https://api.relay.link/quote"
    assert kwargs["headers"] == {}


def test_execute_uses_x_api_key():
    client, session = _client()
    session.post.return_value = _response(payload={"requestId": "0xreq"})

    assert client.execute({"executionKind": "rawCalls"}) == {"requestId": "0xreq"}
    args, kwargs = session.post.call_args
    assert args[0] == "https://api.relay.link/execute"
    assert kwargs["headers"] == {"x-api-key": "test-key"}


def test_execute_requires_api_key():
    client, session = _client(api_key=None)
    with pytest.raises(ConfigError, match="RELAY_API_KEY"):
        client.execute({})
    session.post.assert_not_called()


def test_get_status_passes_request_id():
    client, session = _client()
    session.get.return_value = _response(payload={"status": "pending"})

    assert client.get_status("0xabc") == {"status": "pending"}
    args, kwargs = session.get.call_args
    assert args[0] == "https://api.relay.link/intents/status/v3"
    assert kwargs["params"] == {"requestId": "0xabc"}


def test_post_signature_relative_endpoint():
    client, session = _client()
    session.post.return_value = _response(payload={"ok": True})

    client.post_signature("/execute/permits", "0xsig", {"kind": "eip3009", "requestId": "0xreq"})

    args, kwargs = session.post.call_args
    assert args[0] == "https://api.relay.link/execute/permits"
    assert kwargs["params"] == {"signature": "0xsig"}
    assert json.loads(kwargs["data"])["requestId"] == "0xreq"


def test_post_signature_absolute_endpoint():
    client, session = _client()
    session.post.return_value = _response(payload={})

    client.post_signature("https://other.relay.link/permits", "0xsig", {})

    assert session.post.call_args.args[0] == "https://other.relay.link/permits"


def test_error_uses_message_field():
    client, session = _client()
    session.post.return_value = _response(400, {"message": "Amount too low", "errorCode": "AMOUNT_TOO_LOW"})

    with pytest.raises(RelayApiError, match=r"Quote failed \(400\): Amount too low") as excinfo:
        client.get_quote({})
    assert excinfo.value.status_code == 400
    assert excinfo.value.body["errorCode"] == "AMOUNT_TOO_LOW"


def test_error_falls_back_to_error_field_then_json():
    client, session = _client()
    session.get.return_value = _response(404, {"error": "Not found"})
    with pytest.raises(RelayApiError, match=r"Status check failed \(404\): Not found"):
        client.get_status("x")

    session.get.return_value = _response(422, {"code": 7})
    with pytest.raises(RelayApiError, match=r'Status check failed \(422\): \{"code": 7\}'):
        client.get_status("x")


def test_error_with_non_json_body_uses_text():
    client, session = _client()
    session.post.return_value = _response(502, ValueError("no json"), text="Bad Gateway")

    with pytest.raises(RelayApiError, match=r"Execute failed \(502\): Bad Gateway"):
        client.execute({})


def test_transport_failure_becomes_connection_error():
    client, session = _client()
    session.post.side_effect = requests.Timeout("read timed out")

    with pytest.raises(ConnectionError, match="Failed to reach Relay at https://api.relay.link/quote/v2"):
        client.get_quote({})


def test_success_with_non_json_body_is_an_api_error():
    client, session = _client()
    session.get.return_value = _response(200, ValueError("no json"), text="<html>maintenance</html>")

    with pytest.raises(RelayApiError, match=r"Status check failed \(200\): expected a JSON object") as excinfo:
        client.get_status("0xreq")
    assert excinfo.value.status_code == 200
    assert "maintenance" in str(excinfo.value)
