from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from . import __version__
from .models import Job

API_PREFIX = "/api/v1"


class HttpQueueClient:
    """Talks to the remote job queue: pick up the next job, push job state."""

    def __init__(self, host: str, secret: Optional[str] = None, name: Optional[str] = None,
                 headers: Optional[Dict[str, str]] = None, timeout: float = 30,
                 session: Optional[requests.Session] = None):
        if not host:
            raise ValueError("Queue host is required.")
        self.base_url = host.rstrip("/") + API_PREFIX
        self.timeout = timeout
        self.session = session or requests.Session()

        headers = dict(headers or {})
        headers["user-agent"] = f"renderworker/{__version__} {headers.get('user-agent', '')}".strip()
        if secret:
            headers["nexrender-secret"] = secret
        if name:
            headers["nexrender-name"] = name
        self.session.headers.update(headers)

    def pickup_job(self, tag_selector: Optional[str] = None) -> Optional[Job]:
        url = f"{self.base_url}/jobs/pickup"
        if tag_selector:
            url += "/" + quote(tag_selector)

        # pickups run on helper threads and never share the session
        resp = requests.get(url, headers=dict(self.session.headers), timeout=self.timeout)
        resp.raise_for_status()
        if resp.status_code == 204 or not resp.content:
            return None

        data = resp.json()
        if not data or not data.get("uid"):
            return None
        return Job.from_dict(data)

    def update_job(self, uid: str, data: Dict[str, Any]) -> Dict[str, Any]:
        resp = self.session.put(f"{self.base_url}/jobs/{quote(uid)}", json=data, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json() if resp.content else {}

    def close(self):
        self.session.close()
