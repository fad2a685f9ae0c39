from __future__ import annotations

"""
Minimal Jira Cloud REST (v3) client used by the discovery engine and the service layer.

Key helpers:
- JiraClient._request(method, path, params=None, json=None)
- issue types, create metadata (new per-project endpoint with legacy fallback)
- field lookup and field options
- issue create/delete

This client is intentionally thin; fallback tiers and business logic live in callers.
Transport errors are logged and re-raised; HTTP error statuses are returned to callers.
"""

from typing import Any, Dict, List, Optional, Tuple
import base64
import logging

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from issue_autofill.models import JiraConnection
from issue_autofill.observability.tracing import get_tracer

logger = logging.getLogger(__name__)


def description_adf(text: str) -> Dict[str, Any]:
    """Wrap plain text into an Atlassian document: one paragraph per blank-line block."""
    blocks = [b.strip() for b in str(text or "").split("\n\n") if b.strip()]
    content = [
        {"type": "paragraph", "content": [{"type": "text", "text": b}]}
        for b in blocks
    ]
    return {"type": "doc", "version": 1, "content": content}


class JiraClient:
    def __init__(self, connection: JiraConnection, *, timeout: float = 30.0) -> None:
        self.connection = connection
        self.base_url: str = (connection.url or "").strip().rstrip("/")
        self.project_key: str = (connection.project_key or "").strip()
        self.timeout = timeout

        # HTTP session with connection pooling
        self.session = requests.Session()
        adapter = HTTPAdapter(pool_connections=4, pool_maxsize=8, max_retries=Retry(total=0, backoff_factor=0))
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    # ---------- HTTP ----------
    def _headers(self) -> Dict[str, str]:
        h = {"Accept": "application/json", "Content-Type": "application/json"}
        token = base64.b64encode(f"{self.connection.email}:{self.connection.api_token}".encode("utf-8")).decode("ascii")
        h["Authorization"] = f"Basic {token}"
        return h

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        if path.startswith("http://") or path.startswith("https://"):
            url = path
        else:
            if not path.startswith("/"):
                path = "/" + path
            url = self.base_url + path
        headers = {**self._headers(), **(kwargs.pop("headers", {}) or {})}
        span = get_tracer().start_span("jira.request", input={"method": method.upper(), "path": path})
        try:
            r = self.session.request(method=method.upper(), url=url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error("Jira request error %s %s: %s", method.upper(), path, e)
            get_tracer().record_error(span, e)
            span.end()
            raise
        span.set_attribute("status", r.status_code)
        rl = r.headers.get("Retry-After")
        if rl is not None:
            span.set_attribute("rate_hint", str(rl))
        span.end()
        return r

    @staticmethod
    def _json(r: requests.Response) -> Any:
        try:
            return r.json()
        except ValueError:
            return {"text": r.text}

    def _get_paginated(self, path: str, items_key: str, params: Optional[Dict[str, Any]] = None) -> Optional[List[Dict[str, Any]]]:
        """Collect startAt/maxResults pages. Returns None when the first page is not 200."""
        items: List[Dict[str, Any]] = []
        start = 0
        while True:
            qp = dict(params or {})
            qp.setdefault("maxResults", 50)
            qp["startAt"] = start
            r = self._request("GET", path, params=qp)
            if r.status_code != 200:
                if start == 0:
                    return None
                break
            data = self._json(r) or {}
            elems = data.get(items_key) or []
            if not isinstance(elems, list):
                break
            items.extend([e for e in elems if isinstance(e, dict)])
            total = data.get("total")
            if data.get("isLast") is True or not elems:
                break
            start += len(elems)
            if total is not None and start >= int(total):
                break
        return items

    # ---------- Access ----------
    def check_access(self) -> Dict[str, Any]:
        try:
            path = f"/rest/api/3/project/{self.project_key}" if self.project_key else "/rest/api/3/myself"
            r = self._request("GET", path)
            return {"ok": r.status_code == 200, "status": r.status_code}
        except requests.RequestException as ex:
            return {"ok": False, "error": str(ex)}

    def browse_url(self, issue_key: str) -> str:
        return f"{self.base_url}/browse/{issue_key}"

    # ---------- Issue types & metadata ----------
    def list_issue_types(self) -> List[Dict[str, Any]]:
        r = self._request("GET", "/rest/api/3/issuetype")
        if r.status_code != 200:
            logger.warning("Listing issue types failed: HTTP %s", r.status_code)
            return []
        data = self._json(r)
        if not isinstance(data, list):
            return []
        out: List[Dict[str, Any]] = []
        for t in data:
            if isinstance(t, dict) and t.get("id") and t.get("name"):
                out.append({"id": str(t["id"]), "name": str(t["name"]), "subtask": bool(t.get("subtask"))})
        return out

    def get_create_metadata_fields(self, issue_type_id: str) -> Dict[str, Dict[str, Any]]:
        """Return fieldId -> raw field schema for creating `issue_type_id` in the project."""
        if not self.project_key:
            return {}
        path = f"/rest/api/3/issue/createmeta/{self.project_key}/issuetypes/{issue_type_id}"
        elems = self._get_paginated(path, "fields")
        if elems is not None:
            out: Dict[str, Dict[str, Any]] = {}
            for f in elems:
                fid = str(f.get("fieldId") or f.get("key") or "").strip()
                if fid:
                    out[fid] = f
            return out
        # Legacy createmeta (deprecated on Cloud, still present on some deployments)
        r = self._request(
            "GET",
            "/rest/api/3/issue/createmeta",
            params={
                "projectKeys": self.project_key,
                "issuetypeIds": issue_type_id,
                "expand": "projects.issuetypes.fields",
            },
        )
        if r.status_code != 200:
            logger.warning("Create metadata unavailable for issue type %s: HTTP %s", issue_type_id, r.status_code)
            return {}
        data = self._json(r) or {}
        projects = data.get("projects") or []
        if not projects:
            return {}
        issuetypes = (projects[0] or {}).get("issuetypes") or []
        if not issuetypes:
            return {}
        fields = (issuetypes[0] or {}).get("fields") or {}
        return {str(k): v for k, v in fields.items() if isinstance(v, dict)}

    def get_field(self, field_id: str) -> Optional[Dict[str, Any]]:
        r = self._request("GET", "/rest/api/3/field")
        if r.status_code != 200:
            return None
        data = self._json(r)
        for f in data if isinstance(data, list) else []:
            if isinstance(f, dict) and str(f.get("id")) == field_id:
                return f
        return None

    def get_field_options(self, field_id: str) -> List[Dict[str, Any]]:
        r = self._request("GET", f"/rest/api/3/field/{field_id}/option")
        if r.status_code != 200:
            return []
        data = self._json(r)
        if isinstance(data, dict):
            values = data.get("values") or []
        elif isinstance(data, list):
            values = data
        else:
            values = []
        return [v for v in values if isinstance(v, dict)]

    # ---------- Issues ----------
    def create_issue(self, payload: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        r = self._request("POST", "/rest/api/3/issue", json=payload)
        body = self._json(r)
        return r.status_code, (body if isinstance(body, dict) else {"body": body})

    def delete_issue(self, issue_key: str) -> bool:
        r = self._request("DELETE", f"/rest/api/3/issue/{issue_key}")
        return r.status_code in (200, 204)
