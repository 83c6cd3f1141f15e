# concierge/functions_client.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import requests
from flask import current_app
from requests.adapters import HTTPAdapter, Retry

from concierge.errors import FunctionInvokeError

log = logging.getLogger(__name__)

USER_AGENT = "aurelia-concierge/0.1"


class FunctionsClient:
    """
    Client for the backend-as-a-service: named serverless functions and the
    auth user endpoint.

    - Every function is POSTed a JSON body and answers JSON
    - A body carrying an ``error`` field counts as a failure
    - Transport retries only on idempotent GETs; function calls are sent once
    - Every request carries a timeout
    """

    def __init__(self, base: str, api_key: str = "", timeout: float = 20.0):
        self.base = (base or "").rstrip("/")
        self._api_key = api_key or ""
        self._timeout = timeout

        self._s = requests.Session()
        self._s.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})
        if self._api_key:
            self._s.headers["apikey"] = self._api_key
        retries = Retry(
            total=3,
            backoff_factor=0.4,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset(["GET"]),
            raise_on_status=False,
        )
        self._s.mount("https://", HTTPAdapter(max_retries=retries))
        self._s.mount("http://", HTTPAdapter(max_retries=retries))

    # ---------- internals ----------

    def _url(self, path: str) -> str:
        if not self.base:
            raise FunctionInvokeError(path, "FUNCTIONS_BASE_URL not configured")
        return urljoin(self.base + "/", path.lstrip("/"))

    def _auth_headers(self, access_token: Optional[str]) -> Dict[str, str]:
        token = access_token or self._api_key
        return {"Authorization": f"Bearer {token}"} if token else {}

    # ---------- public ----------

    def invoke(self, name: str, body: Optional[dict] = None, access_token: Optional[str] = None) -> Dict[str, Any]:
        """
        Call a named function.

        Args:
            name: function name, e.g. ``generate-site-content``
            body: JSON body
            access_token: member JWT; falls back to the service key

        Returns:
            Decoded JSON object.

        Raises:
            FunctionInvokeError: transport failure, non-2xx, non-JSON, or ``error`` in the body.
        """
        url = self._url(f"/functions/v1/{name}")
        try:
            r = self._s.post(url, json=body or {}, headers=self._auth_headers(access_token), timeout=self._timeout)
        except requests.RequestException as e:
            log.warning("function %s transport error: %s", name, e)
            raise FunctionInvokeError(name, str(e)) from e

        try:
            data = r.json()
        except ValueError:
            data = None

        if not r.ok:
            msg = (data or {}).get("error") if isinstance(data, dict) else None
            log.warning("function %s returned %s", name, r.status_code)
            raise FunctionInvokeError(name, msg or f"HTTP {r.status_code}", status=r.status_code, payload=data)
        if not isinstance(data, dict):
            raise FunctionInvokeError(name, "response was not a JSON object", status=r.status_code, payload=r.text[:500])
        if data.get("error"):
            raise FunctionInvokeError(name, str(data["error"]), status=r.status_code, payload=data)
        return data

    def get_user(self, access_token: str) -> Dict[str, Any]:
        """Resolve a member access token to the backend auth user."""
        url = self._url("/auth/v1/user")
        try:
            r = self._s.get(url, headers={"Authorization": f"Bearer {access_token}"}, timeout=self._timeout)
        except requests.RequestException as e:
            raise FunctionInvokeError("auth", str(e)) from e
        if r.status_code in (401, 403):
            raise FunctionInvokeError("auth", "invalid or expired token", status=r.status_code)
        if not r.ok:
            raise FunctionInvokeError("auth", f"HTTP {r.status_code}", status=r.status_code)
        try:
            return r.json()
        except ValueError as e:
            raise FunctionInvokeError("auth", "response was not JSON", status=r.status_code) from e

    # ---------- named functions ----------

    def generate_ambient_sfx(self, mood: str, duration: int) -> Dict[str, Any]:
        return self.invoke("generate-ambient-sfx", {"mood": mood, "duration": duration})

    def purchase_credits(self, package_id: str, access_token: Optional[str] = None) -> str:
        data = self.invoke("purchase-credits", {"packageId": package_id}, access_token=access_token)
        url = data.get("url")
        if not url:
            raise FunctionInvokeError("purchase-credits", "no checkout url returned", payload=data)
        return url

    def send_email(self, to: str, subject: str, html: str) -> Dict[str, Any]:
        return self.invoke("send-email", {"to": to, "subject": subject, "html": html})

    def partner_invite(self, payload: dict) -> Dict[str, Any]:
        return self.invoke("partner-invite", payload)

    def conversation_token(self, access_token: Optional[str] = None) -> Dict[str, Any]:
        return self.invoke("elevenlabs-conversation-token", {}, access_token=access_token)

    def generate_site_content(self, prompt: str, tone: str, language: str, block_type: Optional[str] = None) -> str:
        data = self.invoke(
            "generate-site-content",
            {"prompt": prompt, "tone": tone, "language": language, "blockType": block_type},
        )
        return data.get("content") or ""

    def referral_email(self, payload: dict) -> Dict[str, Any]:
        return self.invoke("referral-email", payload)

    def check_subscription(self, access_token: Optional[str] = None) -> Dict[str, Any]:
        return self.invoke("check-subscription", {}, access_token=access_token)

    def social_publish(self, payload: dict) -> Dict[str, Any]:
        return self.invoke("social-publish", payload)


def get_functions_client() -> FunctionsClient:
    """One client per app, built from config on first use."""
    ext = current_app.extensions
    client = ext.get("functions_client")
    if client is None:
        client = FunctionsClient(
            current_app.config.get("FUNCTIONS_BASE_URL", ""),
            current_app.config.get("FUNCTIONS_API_KEY", ""),
            timeout=float(current_app.config.get("FUNCTIONS_TIMEOUT", 20)),
        )
        ext["functions_client"] = client
    return client
