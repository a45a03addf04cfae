"""
TM1 v12 Async REST Transport

Pure async HTTP transport for the TM1 REST API, built on
tornado.httpclient for fully non-blocking I/O. Every other service in
tm1rest talks to the server through this class only.

Usage:
    from tm1rest.rest import RestService

    rest = RestService(base_url="https://tm1server/api/v1", user="admin", password="<your-password>")
    await rest.connect()

    response = await rest.get("/Cubes?$select=Name")
    names = [c["Name"] for c in response.body.get("value", [])]

    await rest.close()
"""

import base64
import contextlib
import json
import logging
import ssl
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import tornado.httpclient

from .exceptions import TM1Error, TM1RestError, TM1TimeoutError

logger = logging.getLogger("tm1rest.rest")

# tornado reports connection-level failures and timeouts with this code
HTTP_CLIENT_ERROR = 599


@dataclass
class Response:
    """Status code and parsed JSON body of a TM1 REST call."""

    status_code: int
    body: Any = field(default_factory=dict)


class RestService:
    """
    Async TM1 REST API transport.

    Args:
        base_url: TM1 REST API base URL (e.g., https://tm1server:8010/api/v1)
        user: Username for basic or CAM auth
        password: Password for basic or CAM auth
        namespace: CAM namespace (switches to CAMNamespace auth)
        access_token: Pre-acquired access token (Bearer auth)
        ssl_verify: Whether to verify SSL certificates
        timeout: Request timeout in seconds
        session_context: Value of the TM1-SessionContext header
    """

    def __init__(
        self,
        base_url: str,
        user: str = "",
        password: str = "",
        namespace: str = "",
        access_token: str = "",
        ssl_verify: bool = True,
        timeout: float = 60.0,
        session_context: str = "TM1Rest",
    ):
        self.base_url = base_url.rstrip("/")
        self.user = user
        self.password = password
        self.namespace = namespace
        self.access_token = access_token
        self.ssl_verify = ssl_verify
        self.timeout = timeout
        self.session_context = session_context

        self._session_id: str | None = None
        self._sandbox: str | None = None
        self._server_version: str | None = None
        self._connected = False

        self._http_client = tornado.httpclient.AsyncHTTPClient()

    # =========================================================================
    # Connection Management
    # =========================================================================

    async def connect(self) -> str:
        """
        Open a session against the TM1 server.

        Returns:
            Server product version

        Raises:
            TM1Error: If connection fails
        """
        response = await self.get("/Configuration/ProductVersion")
        self._server_version = response.body.get("value", "")
        self._connected = True
        logger.info(f"Connected to TM1 {self._server_version} at {self.base_url}")
        return self._server_version

    async def close(self) -> None:
        """End the TM1 session."""
        if self._connected:
            with contextlib.suppress(TM1Error):
                await self.post("/ActiveSession/tm1.Close", body={})
            self._connected = False
            self._session_id = None
            logger.info("TM1 session closed")

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def server_version(self) -> str | None:
        return self._server_version

    def set_sandbox(self, sandbox_name: str | None) -> None:
        """Pin all subsequent requests to a sandbox (None for base data)."""
        self._sandbox = sandbox_name

    def get_sandbox(self) -> str | None:
        return self._sandbox

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    # =========================================================================
    # HTTP Methods
    # =========================================================================

    async def get(self, path: str) -> Response:
        """HTTP GET."""
        return await self._request("GET", path)

    async def post(self, path: str, body: Any = None) -> Response:
        """HTTP POST."""
        return await self._request("POST", path, {} if body is None else body)

    async def patch(self, path: str, body: Any = None) -> Response:
        """HTTP PATCH."""
        return await self._request("PATCH", path, {} if body is None else body)

    async def delete(self, path: str) -> Response:
        """HTTP DELETE."""
        return await self._request("DELETE", path)

    # =========================================================================
    # Internals
    # =========================================================================

    def _build_headers(self) -> dict[str, str]:
        """Build request headers."""
        headers = {
            "Content-Type": "application/json; charset=utf-8",
            "Accept": "application/json;odata.metadata=none",
        }

        if self._session_id:
            headers["Cookie"] = f"TM1SessionId={self._session_id}"
        elif self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        elif self.namespace:
            token = f"{self.user}:{self.password}:{self.namespace}"
            headers["Authorization"] = f"CAMNamespace {base64.b64encode(token.encode()).decode()}"
        elif self.user:
            credentials = base64.b64encode(f"{self.user}:{self.password}".encode()).decode()
            headers["Authorization"] = f"Basic {credentials}"

        if self.session_context:
            headers["TM1-SessionContext"] = self.session_context
        if self._sandbox:
            headers["TM1-Sandbox"] = self._sandbox

        return headers

    def _build_ssl_context(self) -> ssl.SSLContext | None:
        if not self.ssl_verify:
            ctx = ssl.create_default_context()
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
            return ctx
        return None

    async def _request(self, method: str, path: str, body: Any = None) -> Response:
        """Make HTTP request to TM1 REST API."""
        url = f"{self.base_url}{path}"
        request_body = json.dumps(body).encode("utf-8") if body is not None else None

        try:
            request = tornado.httpclient.HTTPRequest(
                url=url,
                method=method,
                headers=self._build_headers(),
                body=request_body,
                request_timeout=self.timeout,
                ssl_options=self._build_ssl_context(),
                validate_cert=self.ssl_verify,
            )
            response = await self._http_client.fetch(request, raise_error=False)
        except tornado.httpclient.HTTPClientError as e:
            # raise_error=False only covers HTTP status errors; timeouts still raise
            if e.code == HTTP_CLIENT_ERROR and "timeout" in str(e).lower():
                raise TM1TimeoutError(f"{method} {path} timed out: {e!s}", self.timeout) from e
            raise TM1Error(f"Request failed: {e!s}") from e
        except Exception as e:
            raise TM1Error(f"Request failed: {e!s}") from e

        if response.headers and "Set-Cookie" in response.headers:
            for cookie in response.headers.get_list("Set-Cookie"):
                if "TM1SessionId=" in cookie:
                    self._session_id = cookie.split("TM1SessionId=")[1].split(";")[0]

        if response.code >= 400:
            error_body = response.body.decode("utf-8", errors="replace") if response.body else ""
            logger.debug(f"{method} {path} -> {response.code}")
            raise TM1RestError(
                _extract_error_message(error_body, response.code),
                status_code=response.code,
                response_body=error_body,
            )

        logger.debug(f"{method} {path} -> {response.code}")
        parsed: Any = {}
        if response.body:
            try:
                parsed = json.loads(response.body.decode("utf-8"))
            except json.JSONDecodeError:
                parsed = {"value": response.body.decode("utf-8", errors="replace")}
        return Response(status_code=response.code, body=parsed)


# =============================================================================
# Helpers
# =============================================================================


def quote_name(name: str) -> str:
    """Escape an object name for use inside an OData key literal."""
    return quote(name.replace("'", "''"), safe="")


def _extract_error_message(body: str, status_code: int) -> str:
    """Extract error message from TM1 REST API error response."""
    try:
        data = json.loads(body)
        error = data.get("error", {})
        message = error.get("message", {})
        if isinstance(message, dict):
            return message.get("value", f"TM1 error (HTTP {status_code})")
        return str(message) or f"TM1 error (HTTP {status_code})"
    except (json.JSONDecodeError, AttributeError):
        return f"TM1 error (HTTP {status_code}): {body[:200]}"
