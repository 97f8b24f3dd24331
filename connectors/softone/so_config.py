"""SoftOne connection and sync configuration.

Settings are read from the environment (optionally seeded from a .env file)
into a single dataclass shared by the client, the import engine, and the
order export engine.

Usage:
    config = load_softone_config()
    client = SoftOneApiClient(config, session_manager)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

from connectors.softone.so_errors import SoftOneConfigError


PLUGIN_VERSION = "1.0.0"
USER_AGENT = f"Softone-WooCommerce-Integration/{PLUGIN_VERSION}"

DEFAULT_TIMEOUT = 20
DEFAULT_CLIENT_ID_TTL = 1800
MIN_CLIENT_ID_TTL = 60

STALE_ACTIONS = ("draft", "stock_out")


def normalize_endpoint(endpoint: str) -> str:
    """Trim whitespace and a trailing slash unless the URL carries a query."""
    endpoint = (endpoint or "").strip()
    if endpoint and "?" not in endpoint:
        endpoint = endpoint.rstrip("/")
    return endpoint


def parse_country_mappings(raw: str) -> Dict[str, str]:
    """Parse ``"GR:1000,CY:1001"`` into ``{"GR": "1000", "CY": "1001"}``.

    Entries without a separator or with an empty side are ignored.
    """
    mappings: Dict[str, str] = {}
    for entry in (raw or "").split(","):
        if ":" not in entry:
            continue
        country, code = entry.split(":", 1)
        country, code = country.strip().upper(), code.strip()
        if country and code:
            mappings[country] = code
    return mappings


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise SoftOneConfigError(f"{name} must be an integer, got {value!r}")


@dataclass
class SoftOneConfig:
    """Configuration for the SoftOne connector.

    Attributes:
        endpoint: Full URL of the SoftOne JSON service endpoint
        username: Web-services user
        password: Web-services password
        app_id: Optional application id sent as appId
        company/branch/module/refid: Authenticate handshake values
        default_saldoc_series: SERIES used for exported sales documents
        warehouse: Optional WHOUSE for the MTRDOC block
        country_mappings: ISO country code -> SoftOne COUNTRY id
    """
    endpoint: str = ""
    username: str = ""
    password: str = ""
    app_id: str = ""
    company: str = ""
    branch: str = ""
    module: str = ""
    refid: str = ""
    default_saldoc_series: str = ""
    warehouse: str = ""
    areas: str = ""
    currency: str = ""
    trdcategory: str = ""
    country_mappings: Dict[str, str] = field(default_factory=dict)
    timeout_seconds: int = DEFAULT_TIMEOUT
    client_id_ttl: int = DEFAULT_CLIENT_ID_TTL
    stale_action: str = "stock_out"
    order_export_attempts: int = 3
    import_batch_size: int = 25

    def __post_init__(self):
        self.endpoint = normalize_endpoint(self.endpoint)
        if self.stale_action not in STALE_ACTIONS:
            self.stale_action = "stock_out"
        if self.timeout_seconds <= 0:
            self.timeout_seconds = DEFAULT_TIMEOUT
        if self.client_id_ttl <= 0:
            self.client_id_ttl = DEFAULT_CLIENT_ID_TTL

    def require_endpoint(self) -> str:
        if not self.endpoint:
            raise SoftOneConfigError("SoftOne endpoint is not configured.")
        return self.endpoint

    def require_credentials(self) -> None:
        if not self.username or not self.password:
            raise SoftOneConfigError("SoftOne username and password must be configured before logging in.")

    @property
    def handshake(self) -> Dict[str, str]:
        """Configured company/branch/module/refid values for authenticate."""
        return {
            "company": self.company,
            "branch": self.branch,
            "module": self.module,
            "refid": self.refid,
        }


def load_softone_config(env_path: Optional[Path] = None) -> SoftOneConfig:
    """Load configuration from environment variables.

    Args:
        env_path: Optional .env file to load first (existing variables win)

    Raises:
        SoftOneConfigError: If a numeric setting is malformed
    """
    if env_path is not None:
        load_dotenv(env_path)
    else:
        load_dotenv()

    return SoftOneConfig(
        endpoint=os.getenv("SOFTONE_ENDPOINT", ""),
        username=os.getenv("SOFTONE_USERNAME", ""),
        password=os.getenv("SOFTONE_PASSWORD", ""),
        app_id=os.getenv("SOFTONE_APP_ID", ""),
        company=os.getenv("SOFTONE_COMPANY", ""),
        branch=os.getenv("SOFTONE_BRANCH", ""),
        module=os.getenv("SOFTONE_MODULE", ""),
        refid=os.getenv("SOFTONE_REFID", ""),
        default_saldoc_series=os.getenv("SOFTONE_SALDOC_SERIES", ""),
        warehouse=os.getenv("SOFTONE_WAREHOUSE", ""),
        areas=os.getenv("SOFTONE_AREAS", ""),
        currency=os.getenv("SOFTONE_CURRENCY", ""),
        trdcategory=os.getenv("SOFTONE_TRDCATEGORY", ""),
        country_mappings=parse_country_mappings(os.getenv("SOFTONE_COUNTRY_MAPPINGS", "")),
        timeout_seconds=_int_env("SOFTONE_TIMEOUT", DEFAULT_TIMEOUT),
        client_id_ttl=_int_env("SOFTONE_CLIENT_ID_TTL", DEFAULT_CLIENT_ID_TTL),
        stale_action=os.getenv("SOFTONE_STALE_ACTION", "stock_out").strip().lower(),
        order_export_attempts=_int_env("SOFTONE_ORDER_EXPORT_ATTEMPTS", 3),
        import_batch_size=_int_env("SOFTONE_IMPORT_BATCH_SIZE", 25),
    )
