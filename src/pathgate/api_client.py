# api_client.py
from __future__ import annotations

import json
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional
from urllib.parse import urljoin

from .errors import PathgateError
from .manifest import pipeline_to_dict
from .model import JobState, Pipeline


class APIError(PathgateError):
    """Raised when control plane requests fail."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


@dataclass
class Lease:
    """A job handed to this agent by the control plane (ClaimedJob response)."""
    job_id: str
    run_id: str
    job_name: str
    payload_json: Dict[str, Any]  # trigger: steps + env, plus repo/ref
    lease_expires_at: str  # ISO format timestamp

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Lease:
        return cls(
            job_id=data["job_id"],
            run_id=data["run_id"],
            job_name=data["job_name"],
            payload_json=data["payload_json"],
            lease_expires_at=data["lease_expires_at"],
        )


class APIClient:
    """HTTP client for the pathgate control plane."""

    def __init__(self, base_url: str, agent_id: str = "cli"):
        """
        Args:
            base_url: Base URL of the API (e.g., "https://gate.example.com")
            agent_id: Identifier used when claiming and completing leases
        """
        self.base_url = base_url.rstrip("/")
        self.agent_id = agent_id

    def _request(self, method: str, path: str, data: Optional[dict] = None) -> dict:
        """
        Make an HTTP request to the API and return the parsed JSON body
        ({} for an empty body).

        Raises:
            APIError: If the request fails
        """
        url = urljoin(self.base_url + "/", path.lstrip("/"))

        req_data = None
        if data is not None:
            req_data = json.dumps(data).encode("utf-8")

        req = urllib.request.Request(
            url,
            data=req_data,
            headers={"Content-Type": "application/json"},
            method=method,
        )

        try:
            with urllib.request.urlopen(req) as response:
                response_data = response.read().decode("utf-8")
                if response_data:
                    return json.loads(response_data)
                return {}
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8") if e.fp else ""
            raise APIError(f"API request failed: {e.code} {e.reason}. {error_body}", status=e.code)
        except urllib.error.URLError as e:
            raise APIError(f"Network error: {e.reason}")
        except json.JSONDecodeError as e:
            raise APIError(f"Invalid JSON response: {e}")

    def create_run(self, repo: str, ref: str, pipeline: Pipeline, changed_paths: Iterable[str]) -> dict:
        return self._request(
            "POST",
            "/runs",
            data={
                "repo": repo,
                "ref": ref,
                "changed_paths": sorted(changed_paths),
                "pipeline": pipeline_to_dict(pipeline),
            },
        )

    def get_run(self, run_id: str) -> dict:
        return self._request("GET", f"/runs/{run_id}")

    def claim_lease(self) -> Optional[Lease]:
        """Claim the next queued job, or None when the queue is empty."""
        response = self._request("POST", "/leases/claim", data={"agent_id": self.agent_id})
        if not response:
            return None
        try:
            return Lease.from_dict(response)
        except (KeyError, TypeError) as e:
            raise APIError(f"Invalid lease response: {e}")

    def complete_lease(self, job_id: str, outcome: JobState, details: Optional[dict] = None) -> dict:
        """Report the terminal outcome of a leased job (success or failure)."""
        return self._request(
            "POST",
            f"/leases/{job_id}/complete",
            data={
                "agent_id": self.agent_id,
                "outcome": JobState(outcome).value,
                "details": details or {},
            },
        )
