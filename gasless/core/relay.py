"""HTTP client for the Relay quote / execute / status API."""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

import requests

from gasless.config import RelayApiConfig
from gasless.core.utils import get_logger

LOGGER = get_logger("gasless.relay")

QUOTE_PATH = "/quote/v2"
LEGACY_QUOTE_PATH = "/quote"
EXECUTE_PATH = "/execute"
STATUS_PATH = "/intents/status/v3"


class RelayApiError(RuntimeError):
    """Raised when the Relay API answers with a non-2xx status."""

    def __init__(self, label: str, status_code: int, body: Any) -> None:
        self.label = label
        self.status_code = status_code
        self.body = body
        super().__init__(f"{label} failed ({status_code}): {_error_detail(body)}")


def _error_detail(body: Any) -> str:
    if isinstance(body, Mapping):
        detail = body.get("message") or body.get("error")
        if detail:
            return str(detail)
        return json.dumps(body)
    if body is None:
        return ""
    return str(body)


def _response_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class RelayClient:
    """Thin wrapper around the hosted Relay API.

    Quote and status calls carry ``Authorization: Bearer <key>`` when a key is
    configured; ``/execute`` always requires the key and sends it as
    ``x-api-key``.
    """

    def __init__(self, config: RelayApiConfig, session: Optional[requests.Session] = None) -> None:
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.config.base_url}{path}"

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.config.api_key}"} if self.config.api_key else {}

    def _request(
        self,
        method: str,
        url: str,
        *,
        label: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
        body: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            if method == "GET":
                response = self.session.get(url, params=params, headers=headers, timeout=self.config.timeout)
            else:
                response = self.session.post(
                    url,
                    params=params,
                    headers=headers,
                    data=json.dumps(body if body is not None else {}),
                    timeout=self.config.timeout,
                )
        except requests.RequestException as exc:
            raise ConnectionError(f"Failed to reach Relay at {url}: {exc}") from exc

        body = _response_body(response)
        if not 200 <= response.status_code < 300:
            raise RelayApiError(label, response.status_code, body)
        if not isinstance(body, dict):
            raise RelayApiError(label, response.status_code, f"expected a JSON object, got: {body!r}")
        return body

    def get_quote(self, payload: Mapping[str, Any], *, path: str = QUOTE_PATH) -> Dict[str, Any]:
        """Request a quote; ``path`` selects ``/quote/v2`` (default) or legacy ``/quote``."""
        LOGGER.debug("POST %s %s", path, payload)
        return self._request("POST", self._url(path), label="Quote", headers=self._auth_headers(), body=payload)

    def execute(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Submit raw calls for sponsored execution."""
        api_key = self.config.ensure_api_key()
        LOGGER.debug("POST %s %s", EXECUTE_PATH, payload)
        return self._request(
            "POST",
            self._url(EXECUTE_PATH),
            label="Execute",
            headers={"x-api-key": api_key},
            body=payload,
        )

    def get_status(self, request_id: str) -> Dict[str, Any]:
        return self._request(
            "GET",
            self._url(STATUS_PATH),
            label="Status check",
            headers=self._auth_headers(),
            params={"requestId": request_id},
        )

    def post_signature(self, endpoint: str, signature: str, body: Mapping[str, Any]) -> Dict[str, Any]:
        """Post a signed permit to the endpoint named by a quote signature step."""
        return self._request(
            "POST",
            self._url(endpoint),
            label="Signature submission",
            headers=self._auth_headers(),
            params={"signature": signature},
            body=body,
        )


__all__ = [
    "EXECUTE_PATH",
    "LEGACY_QUOTE_PATH",
    "QUOTE_PATH",
    "RelayApiError",
    "RelayClient",
    "STATUS_PATH",
]
