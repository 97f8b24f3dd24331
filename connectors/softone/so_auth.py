"""SoftOne session management.

Owns the login → authenticate handshake and the two-tier client ID cache:
- A fast TTL store (cache eviction or restart may lose it)
- A durable metadata record whose ``expires_at`` stays authoritative

When the fast entry is missing, the durable record re-seeds it with the
*remaining* lifetime only, never the full TTL.

Usage:
    sessions = SoftOneSessionManager(config, InMemoryKeyValueStore(), InMemorySessionMetaStore())
    client = SoftOneApiClient(config, sessions)
    client_id = await sessions.get_client_id()
"""

import logging
import math
import time
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from connectors.softone.so_config import MIN_CLIENT_ID_TTL, SoftOneConfig
from connectors.softone.so_errors import SoftOneAuthError
from connectors.softone.so_models import AuthenticateResponse, LoginResponse
from core.security.session_store import SessionMetaStore, StoredSession
from core.storage.kv_store import KeyValueStore

if TYPE_CHECKING:
    from connectors.softone.so_client import SoftOneApiClient

logger = logging.getLogger(__name__)


CLIENT_ID_CACHE_KEY = "softone_woocommerce_integration_client_id"
CLIENT_META_KEY = "softone_woocommerce_integration_client_meta"

# Expiry hints in the first login object are minutes
LOGIN_TTL_KEYS = ("EXPTIME", "exptime", "exp_time", "expires_in")
# Expiry hints in the authenticate response are seconds
AUTHENTICATE_TTL_KEYS = ("expires_in", "ttl", "session_ttl")

HANDSHAKE_KEYS = {
    "COMPANY": "company",
    "company": "company",
    "BRANCH": "branch",
    "branch": "branch",
    "MODULE": "module",
    "module": "module",
    "REFID": "refid",
    "refid": "refid",
}

# The durable record is the token a caller holds; expires_at == cached_at + ttl
SessionToken = StoredSession


def _numeric(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _handshake_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value).strip()


def extract_handshake(login: LoginResponse) -> Dict[str, str]:
    """Company/branch/module/refid values offered by the login response."""
    handshake = {"company": "", "branch": "", "module": "", "refid": ""}
    obj = login.first_object
    for source, target in HANDSHAKE_KEYS.items():
        if source in obj:
            value = _handshake_value(obj[source])
            if value:
                handshake[target] = value
    return handshake


def merge_handshake(configured: Dict[str, str], from_login: Dict[str, str]) -> Dict[str, str]:
    """Login-provided values win over configured ones; empty values never override."""
    merged = {k: (v or "").strip() for k, v in configured.items()}
    for key, value in from_login.items():
        if key in merged and value:
            merged[key] = value
    return merged


def resolve_ttl(login: LoginResponse, authenticate: AuthenticateResponse, default_ttl: int) -> int:
    """Derive the client ID cache lifetime in seconds.

    Priority: login ``objs[0]`` expiry (minutes), then authenticate expiry
    (seconds), then ``default_ttl``. The result is clamped to >= 60 seconds.
    """
    ttl = 0

    obj = login.first_object
    for key in LOGIN_TTL_KEYS:
        minutes = _numeric(obj.get(key))
        if minutes is not None:
            ttl = int(minutes) * 60
            break

    if ttl == 0:
        extra = authenticate.extra
        for key in AUTHENTICATE_TTL_KEYS:
            seconds = _numeric(extra.get(key))
            if seconds is not None:
                ttl = int(seconds)
                break

    if ttl <= 0:
        ttl = default_ttl

    return max(MIN_CLIENT_ID_TTL, int(ttl))


class SoftOneSessionManager:
    """Session lifecycle for the SoftOne endpoint.

    Handles:
    - Cached client ID reuse (fast store, then durable metadata)
    - Fresh session bootstrap (login + authenticate)
    - Explicit invalidation after an authentication failure

    Concurrent refreshes may both succeed and both write; the last write wins
    and both tokens are valid.
    """

    def __init__(
        self,
        config: SoftOneConfig,
        cache: KeyValueStore,
        meta_store: SessionMetaStore,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize session manager.

        Args:
            config: SoftOne configuration (credentials, default TTL)
            cache: Fast TTL store for the client ID
            meta_store: Durable session metadata store
            clock: Epoch-seconds clock (injectable for tests)
        """
        self.config = config
        self.cache = cache
        self.meta_store = meta_store
        self._clock = clock
        self._client: Optional["SoftOneApiClient"] = None
        self.login_handshake: Dict[str, str] = {}

    def bind(self, client: "SoftOneApiClient") -> None:
        """Attach the client used for login/authenticate calls."""
        self._client = client

    async def get_client_id(self, force_refresh: bool = False) -> str:
        """Return a usable client ID, bootstrapping a session when needed.

        Args:
            force_refresh: Skip both caches and open a new session

        Raises:
            SoftOneAuthError: A new session could not be established
            SoftOneConfigError: Credentials or endpoint are missing
            SoftOneApiError: Login/authenticate dispatch failed
        """
        if not force_refresh:
            cached = self.cache.get(CLIENT_ID_CACHE_KEY)
            if cached:
                return str(cached)

            meta = await self.meta_store.get(CLIENT_META_KEY)
            now = self._clock()
            if meta and meta.client_id and not meta.is_expired(now):
                remaining = math.floor(meta.remaining(now))
                if remaining > 0:
                    self.cache.set(CLIENT_ID_CACHE_KEY, meta.client_id, ttl=remaining)
                logger.debug(f"Reusing durable SoftOne session ({remaining}s left)")
                return meta.client_id

        return await self.bootstrap_session()

    async def bootstrap_session(self) -> str:
        """Login, authenticate, and cache the resulting client ID.

        Nothing is cached unless both calls return a client ID.
        """
        if self._client is None:
            raise SoftOneAuthError("Session manager is not bound to a SoftOne client.")

        logger.info("Requesting a fresh SoftOne session")

        login = await self._client.login()
        if not login.client_id:
            raise SoftOneAuthError("SoftOne login failed to return a client ID.", {"response": login.raw()})

        self.login_handshake = extract_handshake(login)
        handshake = merge_handshake(self.config.handshake, self.login_handshake)

        authenticate = await self._client.authenticate(login.client_id, handshake)
        if not authenticate.client_id:
            raise SoftOneAuthError(
                "SoftOne authentication did not return a client ID.",
                {"response": authenticate.raw()},
            )

        ttl = resolve_ttl(login, authenticate, self.config.client_id_ttl)
        await self.cache_client_id(authenticate.client_id, ttl)
        return authenticate.client_id

    async def cache_client_id(self, client_id: str, ttl: Optional[int] = None) -> SessionToken:
        """Write the client ID to both tiers.

        Args:
            client_id: Client ID to cache
            ttl: Lifetime in seconds; defaults to the configured TTL
        """
        ttl = ttl if ttl and ttl > 0 else self.config.client_id_ttl
        ttl = max(MIN_CLIENT_ID_TTL, int(ttl))

        token = SessionToken.create(client_id, cached_at=self._clock(), ttl=ttl)
        self.cache.set(CLIENT_ID_CACHE_KEY, client_id, ttl=ttl)
        await self.meta_store.store(CLIENT_META_KEY, token)
        return token

    async def refresh_from_response(self, client_id: str) -> None:
        """Adopt a server-rotated client ID.

        The rotated ID inherits the remaining lifetime of the current session
        when one is known, so rotation never extends a session.
        """
        meta = await self.meta_store.get(CLIENT_META_KEY)
        if meta and meta.client_id == client_id:
            return

        ttl = None
        if meta and not meta.is_expired(self._clock()):
            ttl = math.floor(meta.remaining(self._clock()))
        await self.cache_client_id(client_id, ttl)

    async def clear_cached_client_id(self) -> None:
        """Delete both cached copies of the client ID."""
        self.cache.delete(CLIENT_ID_CACHE_KEY)
        await self.meta_store.delete(CLIENT_META_KEY)

    async def current_session(self) -> Optional[SessionToken]:
        """The durable session record, if any."""
        return await self.meta_store.get(CLIENT_META_KEY)
