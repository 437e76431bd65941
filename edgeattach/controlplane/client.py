"""Control plane REST API client.

Synchronous httpx wrapper covering what exec and log sessions need: session
login, agent listing and microservice lookup.  No live control plane is
required to import; errors surface at call time.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlsplit

import httpx

logger = logging.getLogger(__name__)

DEFAULT_CONTROLLER_PORT = 51121
API_PREFIX = "/api/v3"


class ControllerError(Exception):
    """Base error for control plane client failures."""


class ControllerConnectionError(ControllerError):
    """Raised when the control plane is network-unreachable."""


class ControllerAuthError(ControllerError):
    """Raised when the control plane returns 401 or 403."""


class ControllerNotFoundError(ControllerError):
    """Raised on 404 or when a named resource does not exist."""


def get_base_url(endpoint: str, use_https: bool = False) -> str:
    """Normalize a stored endpoint to ``scheme://host:port/api/v3``.

    A bare host gets the default controller port; a missing scheme becomes
    http (or https when *use_https*).
    """
    endpoint = endpoint.strip().rstrip("/")
    if "://" not in endpoint:
        scheme = "https" if use_https else "http"
        endpoint = f"{scheme}://{endpoint}"
    parts = urlsplit(endpoint)
    if not parts.hostname:
        raise ValueError(f"invalid control plane endpoint: {endpoint!r}")
    netloc = parts.netloc
    if parts.port is None:
        netloc = f"{netloc}:{DEFAULT_CONTROLLER_PORT}"
    path = parts.path.rstrip("/")
    if not path.endswith(API_PREFIX):
        path = f"{path}{API_PREFIX}"
    return f"{parts.scheme}://{netloc}{path}"


class ControllerClient:
    """Thin wrapper around the control plane REST API.

    One :class:`httpx.Client` is reused across calls.  Call :meth:`close`
    (or use as a context manager) when done.
    """

    def __init__(
        self,
        base_url: str,
        access_token: str = "",
        refresh_token: str = "",
        email: str = "",
        password: str = "",
        timeout: float = 30.0,
        verify: bool = False,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._email = email
        self._password = password
        # Control planes usually run self-signed certificates.
        self._client = httpx.Client(timeout=timeout, verify=verify, transport=transport)

    @classmethod
    def session_login(
        cls,
        base_url: str,
        email: str,
        password: str,
        refresh_token: str = "",
        transport: httpx.BaseTransport | None = None,
    ) -> "ControllerClient":
        """Return a logged-in client: refresh token first, password as fallback."""
        client = cls(
            base_url,
            refresh_token=refresh_token,
            email=email,
            password=password,
            transport=transport,
        )
        try:
            client.refresh_session()
        except ControllerError:
            client.close()
            raise
        return client

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ControllerClient":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def access_token(self) -> str:
        return self._access_token

    @property
    def refresh_token(self) -> str:
        return self._refresh_token

    # ------------------------------------------------------------------ #
    # Session
    # ------------------------------------------------------------------ #

    def refresh_session(self) -> None:
        """Renew tokens in place.

        Uses the refresh token when there is one and falls back to an
        email/password login if that is rejected.
        """
        if self._refresh_token:
            try:
                tokens = self._post("/user/refresh", {"refreshToken": self._refresh_token}, auth=False)
                self._store_tokens(tokens)
                return
            except ControllerAuthError as exc:
                logger.debug("Refresh token rejected, logging in again: %s", exc)
        tokens = self._post(
            "/user/login", {"email": self._email, "password": self._password}, auth=False
        )
        self._store_tokens(tokens)

    # ------------------------------------------------------------------ #
    # Resources
    # ------------------------------------------------------------------ #

    def list_agents(self) -> list[dict]:
        """Return every agent the user can see (GET /iofog-list)."""
        result = self._get("/iofog-list")
        fogs = result.get("fogs") if isinstance(result, dict) else None
        return fogs if isinstance(fogs, list) else []

    def get_agent_by_name(self, name: str) -> dict:
        for agent in self.list_agents():
            if agent.get("name") == name:
                return agent
        raise ControllerNotFoundError(f"agent {name!r} not found")

    def get_microservice_by_name(self, app: str, name: str) -> dict:
        """Look up a microservice of application *app* (GET /microservices)."""
        return self._find_microservice("/microservices", app, name)

    def get_system_microservice_by_name(self, app: str, name: str) -> dict:
        """Look up a system microservice (GET /microservices/system)."""
        return self._find_microservice("/microservices/system", app, name)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _find_microservice(self, path: str, app: str, name: str) -> dict:
        result = self._get(path, params={"application": app})
        items = result.get("microservices") if isinstance(result, dict) else None
        for msvc in items or []:
            if msvc.get("name") == name:
                return msvc
        raise ControllerNotFoundError(f"microservice {app}/{name} not found")

    def _store_tokens(self, tokens: Any) -> None:
        if not isinstance(tokens, dict) or not tokens.get("accessToken"):
            raise ControllerAuthError("login response carried no access token")
        self._access_token = tokens["accessToken"]
        self._refresh_token = tokens.get("refreshToken", self._refresh_token)

    def _get(self, path: str, params: dict | None = None) -> Any:
        return self._request("GET", path, params=params)

    def _post(self, path: str, data: dict, auth: bool = True) -> Any:
        return self._request("POST", path, json=data, auth=auth)

    def _request(self, method: str, path: str, auth: bool = True, **kwargs: Any) -> Any:
        url = f"{self._base_url}{path}"
        headers = {"Content-Type": "application/json"}
        if auth and self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        try:
            response = self._client.request(method, url, headers=headers, **kwargs)
        except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
            raise ControllerConnectionError(f"Cannot reach control plane at {url}: {exc}") from exc
        if response.status_code in (401, 403):
            raise ControllerAuthError(f"control plane returned {response.status_code} for {path}")
        if response.status_code == 404:
            raise ControllerNotFoundError(f"{path} not found")
        if response.is_error:
            raise ControllerError(f"control plane returned {response.status_code} for {path}: {response.text}")
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise ControllerError(f"invalid JSON from {path}: {exc}") from exc
