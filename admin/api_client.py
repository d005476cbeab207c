"""
Intake API Client
=================
Thin httpx wrapper used by the Streamlit apps to talk to the task intake
API. Every call returns the decoded JSON body; HTTP errors carrying a JSON
body are returned as-is so pages can show the server's message.
"""

import os
from typing import Dict, Any, Optional, List

import httpx

API_URL = os.getenv("INTAKE_API_URL", "http://localhost:5000/api")
TIMEOUT_SECONDS = float(os.getenv("INTAKE_API_TIMEOUT", "20"))


class IntakeApiError(Exception):
    """The API could not be reached or returned a non-JSON error."""


class IntakeApiClient:
    """Synchronous client; Streamlit reruns the script per interaction."""

    def __init__(self, base_url: str = API_URL, timeout: float = TIMEOUT_SECONDS, transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise IntakeApiError(f"Cannot reach {self.base_url}: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise IntakeApiError(f"{method} {path} returned {response.status_code}") from e

    # Chat
    def chat(self, message: str, history: List[Dict[str, str]], collected: Dict[str, Any]) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/ai/chat",
            json={
                "message": message,
                "conversationHistory": history[-20:],
                "conversationData": collected,
            },
        )

    # Tasks
    def submit_task(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/tasks", json=payload)

    def list_tasks(
        self,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        task_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if status:
            params["status"] = status
        if task_type:
            params["taskType"] = task_type
        return self._request("GET", "/tasks", params=params)

    def get_task(self, task_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/tasks/{task_id}")

    def update_status(self, task_id: str, status: str) -> Dict[str, Any]:
        return self._request("PATCH", f"/tasks/{task_id}/status", json={"status": status})

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/health")

    def close(self):
        self._client.close()
