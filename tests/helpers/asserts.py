from typing import Optional, Dict, Any
from fastapi.testclient import TestClient

def api_call(client: TestClient, method: str, path: str, headers: Optional[Dict[str, str]] = None, json: Optional[Dict[str, Any]] = None, expected_min: int = 200, expected_max: int = 300):
    response = client.request(method, path, headers=headers, json=json)
    ok = expected_min <= response.status_code < expected_max
    try:
        body = response.json()
    except Exception:
        body = response.text
    assert ok, f"{method} {path} => {response.status_code}, body={body}, json={json}"
    return response

def api_data(client: TestClient, method: str, path: str, headers: Optional[Dict[str, str]] = None, json: Optional[Dict[str, Any]] = None):
    """Successful call, unwrapped to the envelope's data."""
    return api_call(client, method, path, headers=headers, json=json).json()["data"]

def api_error(client: TestClient, method: str, path: str, status: int, code: Optional[str] = None, headers: Optional[Dict[str, str]] = None, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Failed call; checks the status and error envelope and returns its error block."""
    response = client.request(method, path, headers=headers, json=json)
    body = response.json()
    assert response.status_code == status, f"{method} {path} => {response.status_code}, body={body}"
    assert set(body) >= {"error", "timestamp", "path", "request_id"}, body
    if code is not None:
        assert body["error"]["code"] == code, body
    return body["error"]
