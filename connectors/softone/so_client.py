"""SoftOne HTTP Client.

Request dispatcher for the single multiplexed SoftOne JSON endpoint.
Handles request body construction, transport/status/decode classification,
business-level authentication failure detection, and the one-shot session
repair retry.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Type, TypeVar

import aiohttp
from pydantic import ValidationError

from connectors.softone.so_auth import SoftOneSessionManager
from connectors.softone.so_config import USER_AGENT, SoftOneConfig
from connectors.softone.so_errors import (
    ApiErrorKind,
    SoftOneApiError,
    SoftOneAuthError,
    SoftOneConfigError,
    redact,
)
from connectors.softone.so_models import (
    AuthenticateResponse,
    LoginResponse,
    ServiceResponse,
    SetDataResponse,
    SqlDataResponse,
)
from core.observability.metrics import SyncMetrics, get_metrics

logger = logging.getLogger(__name__)

ResponseT = TypeVar("ResponseT", bound=ServiceResponse)


# Case-insensitive substrings that mark an expired/invalid session
AUTH_ERROR_INDICATORS = (
    "clientid",
    "client id",
    "expired",
    "session",
    "authenticate",
    "authenticat",
    "not valid",
)
AUTH_ERROR_CODES = ("401", "403")

# Fallback codepages tried when a body is not valid UTF-8
FALLBACK_ENCODINGS = ("cp1253", "iso-8859-7", "cp1252")


def decode_body(raw: bytes) -> str:
    """Decode a response body, tolerating the legacy Greek/Latin codepages."""
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        pass
    for encoding in FALLBACK_ENCODINGS:
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    return raw.decode("utf-8", errors="replace")


def is_authentication_error(response: ServiceResponse) -> bool:
    """Whether a failed response looks like an expired or invalid session."""
    message = response.error_message().lower()
    if message and any(indicator in message for indicator in AUTH_ERROR_INDICATORS):
        return True
    return response.error_code in AUTH_ERROR_CODES


class SoftOneApiClient:
    """HTTP client for the SoftOne web-services endpoint.

    Provides:
    - Typed service calls (login, authenticate, SqlData, setData)
    - Client ID injection via the session manager
    - Exactly one session repair retry on authentication failures

    Usage:
        async with SoftOneApiClient(config, sessions) as client:
            rows = (await client.sql_data("getItems")).rows
    """

    def __init__(
        self,
        config: SoftOneConfig,
        session_manager: SoftOneSessionManager,
        http_session: Optional[aiohttp.ClientSession] = None,
        metrics: Optional[SyncMetrics] = None,
    ):
        """Initialize API client.

        Args:
            config: SoftOne configuration
            session_manager: Session manager (bound to this client on init)
            http_session: Optional shared aiohttp session; created lazily otherwise
            metrics: Metrics collector (defaults to the global one)
        """
        self.config = config
        self.sessions = session_manager
        self.sessions.bind(self)
        self.metrics = metrics or get_metrics()
        self._session = http_session
        self._owns_session = http_session is None

    async def __aenter__(self) -> "SoftOneApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

    def prepare_request_body(
        self,
        service: str,
        data: Optional[Dict[str, Any]],
        client_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Merge service name, client ID, app ID, and caller data; drop nulls."""
        body: Dict[str, Any] = {"service": service}
        body.update(data or {})
        body["service"] = service

        if client_id is not None:
            body["clientID"] = client_id
            body["clientid"] = client_id

        app_id = (self.config.app_id or "").strip()
        if app_id and "appId" not in body and "appID" not in body:
            body["appId"] = app_id

        return {k: v for k, v in body.items() if v is not None}

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def call_service(
        self,
        service: str,
        data: Optional[Dict[str, Any]] = None,
        requires_client_id: bool = True,
        retry_on_auth: bool = True,
        response_model: Type[ResponseT] = ServiceResponse,
    ) -> ResponseT:
        """Dispatch a named service and return its typed response.

        Args:
            service: Case-sensitive SoftOne service name
            data: Service payload
            requires_client_id: Inject the session client ID
            retry_on_auth: Allow one session repair retry on auth failures
            response_model: Response model to validate into

        Returns:
            Validated response

        Raises:
            SoftOneConfigError: Missing service name or endpoint
            SoftOneAuthError: No usable session could be established
            SoftOneApiError: Transport, HTTP status, decode, or business failure
        """
        if not service:
            raise SoftOneConfigError("A SoftOne service name is required.")
        self.config.require_endpoint()

        max_attempts = 2 if requires_client_id and retry_on_auth else 1
        body: Dict[str, Any] = {}
        response: Optional[ResponseT] = None

        for attempt in range(1, max_attempts + 1):
            client_id = None
            if requires_client_id:
                client_id = await self.sessions.get_client_id(force_refresh=attempt > 1)
                if not client_id:
                    raise SoftOneAuthError("Unable to determine SoftOne client ID.", {"service": service})

            body = self.prepare_request_body(service, data, client_id)
            payload = await self._dispatch(body, service)

            try:
                response = response_model.model_validate(payload)
            except ValidationError as e:
                self.metrics.record_dispatch_failure(ApiErrorKind.DECODE.value)
                raise SoftOneApiError(
                    f"SoftOne returned an unexpected {service} payload: {e.error_count()} invalid field(s)",
                    ApiErrorKind.DECODE,
                    context={"service": service, "response": payload},
                )

            if response.success:
                break

            if attempt < max_attempts and is_authentication_error(response):
                logger.warning(f"SoftOne session appears to have expired during {service}; refreshing credentials")
                self.metrics.record_auth_retry(service)
                await self.sessions.clear_cached_client_id()
                continue

            break

        if not response.success:
            message = response.error_message() or "SoftOne request failed."
            context = {"service": service, "request": body, "response": response.raw()}
            logger.error(f"SoftOne {service} failed: {message}")
            self.metrics.record_dispatch_failure(ApiErrorKind.BUSINESS.value)
            raise SoftOneApiError(message, ApiErrorKind.BUSINESS, 200, json.dumps(redact(response.raw()), default=str), context)

        if requires_client_id and response.client_id:
            await self.sessions.refresh_from_response(response.client_id)

        return response

    async def _dispatch(self, body: Dict[str, Any], service: str) -> Dict[str, Any]:
        """Send one POST and return the decoded JSON object."""
        endpoint = self.config.require_endpoint()
        context = {"service": service, "endpoint": endpoint, "request": body}
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)

        self.metrics.record_dispatch(service)
        session = self._get_session()

        try:
            async with session.post(
                endpoint,
                data=json.dumps(body),
                headers=self._get_headers(),
                timeout=timeout,
            ) as response:
                status = response.status
                raw = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.metrics.record_dispatch_failure(ApiErrorKind.TRANSPORT.value)
            message = f"SoftOne request error: {str(e) or type(e).__name__}"
            logger.error(f"{message} (service={service})")
            raise SoftOneApiError(message, ApiErrorKind.TRANSPORT, context=context)

        text = decode_body(raw)

        if status < 200 or status >= 300:
            self.metrics.record_dispatch_failure(ApiErrorKind.HTTP_STATUS.value)
            logger.error(f"SoftOne responded with HTTP {status} for {service}")
            raise SoftOneApiError(
                f"SoftOne responded with HTTP {status}: {text[:500]}",
                ApiErrorKind.HTTP_STATUS,
                status,
                text,
                {**context, "status_code": status},
            )

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            self.metrics.record_dispatch_failure(ApiErrorKind.DECODE.value)
            logger.error(f"SoftOne returned invalid JSON for {service}: {e}")
            raise SoftOneApiError(
                f"SoftOne returned invalid JSON: {e.msg}",
                ApiErrorKind.DECODE,
                status,
                text,
                context,
            )

        if not isinstance(payload, dict):
            self.metrics.record_dispatch_failure(ApiErrorKind.DECODE.value)
            raise SoftOneApiError(
                "SoftOne returned a JSON value that is not an object.",
                ApiErrorKind.DECODE,
                status,
                text,
                context,
            )

        return payload

    # =========================================================================
    # Services
    # =========================================================================

    async def login(self) -> LoginResponse:
        """Call the ``login`` service with the configured credentials.

        Raises:
            SoftOneConfigError: Username or password missing
            SoftOneAuthError: Login returned no client ID
        """
        self.config.require_credentials()
        payload = {"username": self.config.username, "password": self.config.password}

        response = await self.call_service("login", payload, requires_client_id=False, response_model=LoginResponse)
        if not response.client_id:
            logger.error("SoftOne login succeeded but no clientID was returned")
            raise SoftOneAuthError("SoftOne login failed to provide a client ID.", {"response": response.raw()})
        return response

    async def authenticate(self, client_id: str, handshake: Optional[Dict[str, str]] = None) -> AuthenticateResponse:
        """Call the ``authenticate`` service for a login client ID.

        Args:
            client_id: Client ID returned by login
            handshake: company/branch/module/refid values; empty values are omitted

        Raises:
            SoftOneAuthError: Missing input client ID or no client ID returned
        """
        if not client_id:
            raise SoftOneAuthError("Cannot authenticate without a SoftOne client ID.")

        payload: Dict[str, Any] = {"clientID": client_id, "clientid": client_id}
        for key, value in (handshake if handshake is not None else self.config.handshake).items():
            if value:
                payload[key] = value

        response = await self.call_service(
            "authenticate", payload, requires_client_id=False, response_model=AuthenticateResponse
        )
        if not response.client_id:
            logger.error("SoftOne authentication did not return a clientID")
            raise SoftOneAuthError("SoftOne authentication failed to provide a client ID.", {"response": response.raw()})
        return response

    async def sql_data(
        self,
        sql_name: str,
        arguments: Optional[Dict[str, Any]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> SqlDataResponse:
        """Execute a stored ``SqlData`` query.

        Args:
            sql_name: Stored SQL name configured in SoftOne
            arguments: Query parameters (sent as ``params``)
            extra: Additional top-level payload values
        """
        if not sql_name:
            raise SoftOneConfigError("A SQL name is required for SqlData requests.")

        payload: Dict[str, Any] = {"SqlName": sql_name}
        payload.update(extra or {})
        if arguments:
            payload["params"] = arguments

        return await self.call_service("SqlData", payload, response_model=SqlDataResponse)

    async def set_data(
        self,
        object_name: str,
        data: Dict[str, Any],
        extra: Optional[Dict[str, Any]] = None,
    ) -> SetDataResponse:
        """Create or update a SoftOne business object via ``setData``."""
        if not object_name:
            raise SoftOneConfigError("An object name is required for setData requests.")

        payload: Dict[str, Any] = {"object": object_name, "data": data}
        payload.update(extra or {})

        return await self.call_service("setData", payload, response_model=SetDataResponse)

    async def test_connection(self) -> str:
        """Force a fresh session and return its client ID."""
        client_id = await self.sessions.get_client_id(force_refresh=True)
        logger.info("SoftOne connection test succeeded")
        return client_id
