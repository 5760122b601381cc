"""Session-authenticated JSON-RPC client for the Odoo backend.

The client authenticates lazily, replays the session cookie on every call,
and re-authenticates once when the backend reports an expired session.
"""

import asyncio
import itertools
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence

import httpx

from erpbridge.app.core.config import Settings, settings
from erpbridge.app.core.http_client import get_http_client
from erpbridge.app.core.logging import get_log_context, get_logger
from erpbridge.app.exceptions import (
    ConfigurationError,
    OdooAuthenticationError,
    SessionExpiredError,
    UpstreamError,
    UpstreamTimeoutError,
)

logger = get_logger(__name__)

# Odoo reports "Odoo Session Expired" with this JSON-RPC error code.
SESSION_EXPIRED_CODE = 100


@dataclass
class OdooConfig:
    """Connection settings for one Odoo database."""

    url: str
    db: str
    username: str
    password: str
    timeout: float = 30.0

    def __post_init__(self) -> None:
        missing = [
            name
            for name in ("url", "db", "username", "password")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                "Odoo configuration is incomplete. Missing: "
                + ", ".join(f"ODOO_{name.upper()}" for name in missing)
            )
        self.url = self.url.rstrip("/")

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "OdooConfig":
        source = source or settings
        return cls(
            url=source.odoo_url,
            db=source.odoo_db,
            username=source.odoo_username,
            password=source.odoo_password,
            timeout=source.odoo_timeout,
        )


@dataclass(frozen=True)
class OdooSession:
    """An authenticated session on the backend."""

    uid: int
    session_id: Optional[str] = None
    cookie: Optional[str] = None

    @property
    def headers(self) -> Dict[str, str]:
        if self.cookie:
            return {"Cookie": self.cookie}
        return {}


class OdooClient:
    """JSON-RPC client bound to a single Odoo database and user.

    Concurrent callers that find no session share a single in-flight
    authentication task instead of each logging in.
    """

    AUTHENTICATE_PATH = "/web/session/authenticate"
    CALL_KW_PATH = "/web/dataset/call_kw"
    MAX_SESSION_RETRIES = 1

    def __init__(
        self,
        config: OdooConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the client.

        Args:
            config: Backend connection settings
            http_client: Optional HTTP client to use instead of the shared one
        """
        self.config = config
        self._http_client = http_client
        self._session: Optional[OdooSession] = None
        self._auth_task: Optional[asyncio.Task] = None
        self._request_ids = itertools.count(1)

    @property
    def session(self) -> Optional[OdooSession]:
        return self._session

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    def reset(self) -> None:
        """Forget the current session; the next call authenticates again."""
        self._session = None

    @asynccontextmanager
    async def _client_context(self) -> AsyncGenerator[httpx.AsyncClient, None]:
        """Yield the HTTP client to use for one request.

        Prefers an explicitly injected client, then the lifespan-managed
        shared client, and falls back to a short-lived client.
        """
        client = self._http_client
        if client is None:
            try:
                client = get_http_client()
            except RuntimeError:
                client = None

        if client is not None:
            yield client
            return

        async with httpx.AsyncClient() as temporary_client:
            yield temporary_client

    def _payload(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "method": "call",
            "params": params,
            "id": next(self._request_ids),
        }

    async def _post(
        self,
        path: str,
        params: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = f"{self.config.url}{path}"
        async with self._client_context() as client:
            response = await client.post(
                url,
                json=self._payload(params),
                headers=headers,
                timeout=self.config.timeout,
            )
        if response.status_code == 401:
            raise SessionExpiredError("Odoo rejected the session (HTTP 401)")
        response.raise_for_status()
        return response

    async def authenticate(self) -> OdooSession:
        """Open a session on the backend.

        Concurrent callers await the same attempt. On failure any partial
        state is cleared and the error is raised to every waiter.

        Raises:
            OdooAuthenticationError: Credentials rejected or unusable response
            UpstreamTimeoutError: The backend did not answer in time
        """
        task = self._auth_task
        if task is None:
            task = asyncio.ensure_future(self._authenticate())
            self._auth_task = task
            task.add_done_callback(self._auth_finished)
        return await asyncio.shield(task)

    def _auth_finished(self, task: asyncio.Task) -> None:
        if self._auth_task is task:
            self._auth_task = None
        # Mark the exception as retrieved; waiters have already received it.
        if not task.cancelled():
            task.exception()

    async def _authenticate(self) -> OdooSession:
        self._session = None
        logger.info(
            f"Authenticating with Odoo as {self.config.username}",
            extra=get_log_context(odoo_db=self.config.db, odoo_url=self.config.url),
        )
        params = {
            "db": self.config.db,
            "login": self.config.username,
            "password": self.config.password,
        }
        try:
            response = await self._post(self.AUTHENTICATE_PATH, params)
            data = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"Odoo authentication timed out: {e}")
            raise UpstreamTimeoutError(
                f"Odoo authentication timed out after {self.config.timeout}s"
            ) from e
        except (httpx.HTTPError, SessionExpiredError, ValueError) as e:
            logger.error(f"Odoo authentication error: {e}")
            raise OdooAuthenticationError(f"Odoo authentication error: {e}") from e

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            message = _error_message(error)
            logger.error(f"Odoo authentication failed: {message}")
            raise OdooAuthenticationError(f"Odoo authentication failed: {message}")

        result = data.get("result") if isinstance(data, dict) else None
        uid = result.get("uid") if isinstance(result, dict) else None
        if not uid:
            logger.error("Odoo authentication returned no user id")
            raise OdooAuthenticationError(
                "Odoo authentication failed: no user id in response"
            )

        cookie = "; ".join(f"{c.name}={c.value}" for c in response.cookies.jar)
        session_id = result.get("session_id") or response.cookies.get("session_id")
        if not cookie and session_id:
            cookie = f"session_id={session_id}"

        session = OdooSession(uid=uid, session_id=session_id, cookie=cookie or None)
        self._session = session
        logger.info(f"Authenticated with Odoo (uid={uid})")
        return session

    def _invalidate(self, session: OdooSession) -> None:
        # Another request may already have replaced the expired session.
        if self._session is session:
            self._session = None

    async def call(
        self,
        model: str,
        method: str,
        args: Optional[Sequence[Any]] = None,
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Execute a model method via JSON-RPC and return its result.

        An expired session is renewed and the call retried once; a second
        expiry is raised as UpstreamError.

        Args:
            model: Odoo model name, e.g. "sale.order"
            method: Model method name, e.g. "search_read"
            args: Positional arguments for the method
            kwargs: Keyword arguments for the method

        Raises:
            UpstreamError: The backend returned an error or was unreachable
            UpstreamTimeoutError: The backend did not answer in time
        """
        params = {
            "model": model,
            "method": method,
            "args": list(args or []),
            "kwargs": dict(kwargs or {}),
        }
        log_context = get_log_context(odoo_model=model, odoo_method=method)

        for attempt in range(self.MAX_SESSION_RETRIES + 1):
            session = self._session or await self.authenticate()
            try:
                return await self._execute(session, params)
            except SessionExpiredError as e:
                self._invalidate(session)
                if attempt >= self.MAX_SESSION_RETRIES:
                    logger.error(
                        f"Odoo session expired again after re-authentication: {e}",
                        extra=log_context,
                    )
                    raise UpstreamError(e.message) from e
                logger.warning(
                    f"Odoo session expired, re-authenticating: {e}",
                    extra=log_context,
                )

    async def _execute(self, session: OdooSession, params: Dict[str, Any]) -> Any:
        try:
            response = await self._post(
                self.CALL_KW_PATH, params, headers=session.headers
            )
            data = response.json()
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(
                f"Odoo request timed out after {self.config.timeout}s"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Odoo request failed: {e}") from e
        except ValueError as e:
            raise UpstreamError(f"Invalid JSON-RPC response from Odoo: {e}") from e

        if not isinstance(data, dict):
            raise UpstreamError("Invalid JSON-RPC response from Odoo")

        error = data.get("error")
        if error:
            message = _error_message(error)
            if _is_session_expired(error):
                raise SessionExpiredError(message)
            raise UpstreamError(message)
        return data.get("result")

    async def search_read(
        self,
        model: str,
        domain: Optional[List[Any]] = None,
        fields: Optional[List[str]] = None,
        limit: int = 0,
        offset: int = 0,
        order: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {
            "domain": domain or [],
            "fields": fields or [],
            "limit": limit,
            "offset": offset,
        }
        if order:
            kwargs["order"] = order
        return await self.call(model, "search_read", [], kwargs)

    async def create(self, model: str, values: Dict[str, Any]) -> int:
        return await self.call(model, "create", [values])

    async def write(self, model: str, ids: List[int], values: Dict[str, Any]) -> bool:
        return await self.call(model, "write", [ids, values])

    async def read(
        self, model: str, ids: List[int], fields: Optional[List[str]] = None
    ) -> List[Dict[str, Any]]:
        return await self.call(model, "read", [ids], {"fields": fields or []})

    async def unlink(self, model: str, ids: List[int]) -> bool:
        return await self.call(model, "unlink", [ids])


def _error_message(error: Any) -> str:
    if not isinstance(error, dict):
        return str(error)
    data = error.get("data")
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return str(error.get("message") or "Unknown Odoo error")


def _is_session_expired(error: Any) -> bool:
    if not isinstance(error, dict):
        return False
    if error.get("code") == SESSION_EXPIRED_CODE:
        return True
    data = error.get("data")
    name = data.get("name", "") if isinstance(data, dict) else ""
    return "SessionExpired" in str(name)


_odoo_client: Optional[OdooClient] = None


def get_odoo_client() -> OdooClient:
    """Get the process-wide Odoo client, building it on first use.

    Raises:
        ConfigurationError: If the Odoo settings are incomplete
    """
    global _odoo_client
    if _odoo_client is None:
        _odoo_client = OdooClient(OdooConfig.from_settings())
    return _odoo_client


def reset_odoo_client() -> None:
    """Drop the process-wide client (for testing)."""
    global _odoo_client
    _odoo_client = None
