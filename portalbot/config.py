"""Application configuration."""
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

import yaml

from portalbot.errors import ConfigError

logger = logging.getLogger(__name__)

_RECOGNISED_BOOL_VALUES = frozenset(
    ("1", "true", "yes", "0", "false", "no")
)
_NO_LIMIT_VALUES = frozenset(("", "none", "null"))

ENV_PREFIX = "PORTALBOT_"

DEFAULT_BROWSER_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-zygote",
    "--disable-extensions",
    "--mute-audio",
    "--no-first-run",
    "--disable-infobars",
)


@dataclass(frozen=True)
class PortalConfig:
    base_url: str
    username: str
    password: str
    session_cookie: str = "ci_session"
    auth_cookie: str = "railwire_cookie_name"
    form_token_field: str = "railwire_test_name"
    login_path: str = "/rlogin"
    authenticated_paths: tuple[str, ...] = ("billcntl", "subcntl")
    timeout: float = 9.0


@dataclass(frozen=True)
class SessionConfig:
    """Credential freshness policy.

    ``ttl`` is how long a credential pair is trusted after login and
    ``refresh_threshold`` is when the proactive background refresh fires.
    Both are in seconds.
    """

    ttl: float = 297.0
    refresh_threshold: float = 285.0
    login_attempts: int = 3
    backoff_delay: float = 1.0

    def __post_init__(self) -> None:
        if not 0 < self.refresh_threshold < self.ttl:
            raise ConfigError(
                f"refresh_threshold ({self.refresh_threshold}) must be between 0 and ttl ({self.ttl})"
            )
        if self.login_attempts < 1:
            raise ConfigError("login_attempts must be at least 1")


@dataclass(frozen=True)
class BrowserConfig:
    executable_path: Optional[str] = None
    headless: bool = True
    navigation_timeout: float = 60.0
    element_timeout: float = 15.0
    args: tuple[str, ...] = DEFAULT_BROWSER_ARGS


@dataclass(frozen=True)
class ChatConfig:
    """Chat bridge settings.

    ``outbound_url`` receives ``{"chat_id": ..., "text": ...}`` POSTs.
    ``secret`` guards the inbound webhook; empty disables the check.
    ``reply_timeout`` bounds every conversational wait; ``None`` waits forever.
    """

    outbound_url: str = "http://localhost:3000/send"
    secret: str = ""
    ignored_group: str = ""
    reply_timeout: Optional[float] = 600.0
    send_timeout: float = 10.0


@dataclass(frozen=True)
class PipelineConfig:
    pass_delay: float = 2.0
    max_stalled_passes: int = 3
    triage_page_offsets: tuple[str, ...] = ("", "30", "60")
    triage_close_subjects: tuple[str, ...] = ("no connectivity", "wireless network issue")
    triage_close_response: str = "The Link has been restored ✅"


@dataclass(frozen=True)
class ReferenceConfig:
    users_file: Path = field(default_factory=lambda: Path("data/PortalUsers.xlsx"))
    partners_file: Path = field(default_factory=lambda: Path("data/TicketMappingANP.xlsx"))
    caf_partners_file: Path = field(default_factory=lambda: Path("data/CAFMappingANP.xlsx"))


@dataclass(frozen=True)
class ComplaintConfig:
    base_url: str = ""
    username: str = ""
    password: str = ""
    platform: str = "GPanel"
    service_provider: str = "Hotstar_Super"
    company_name: str = "RailTel Corporation India Ltd."
    vendor_code: str = "RTCIL"
    operator_code: str = "JHRT"
    ticket_owner: str = ""
    timeout: float = 15.0


@dataclass(frozen=True)
class SlaConfig:
    base_url: str = ""
    username: str = ""
    password: str = ""
    project: str = "Retail"
    circle: str = "JH"
    msp_id: str = "11"
    timeout: float = 15.0


@dataclass(frozen=True)
class AppConfig:
    portal: PortalConfig
    session: SessionConfig = field(default_factory=SessionConfig)
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    reference: ReferenceConfig = field(default_factory=ReferenceConfig)
    complaints: ComplaintConfig = field(default_factory=ComplaintConfig)
    sla: SlaConfig = field(default_factory=SlaConfig)
    db_path: Path = field(default_factory=lambda: Path("data/portalbot.db"))


def _parse_bool(value: str, default: bool) -> bool:
    """Parse a boolean environment variable with explicit default.

    Recognises ``true/1/yes`` and ``false/0/no`` (case-insensitive).
    Returns *default* when the value is empty or unset.
    Logs a warning and returns *default* for unrecognised values.
    """
    if not value:
        return default
    normalised = value.lower()
    if normalised not in _RECOGNISED_BOOL_VALUES:
        logger.warning(
            "Unrecognised boolean value %r, using default %s. "
            "Expected one of: true/1/yes or false/0/no.",
            value,
            default,
        )
        return default
    return normalised in ("1", "true", "yes")


def _env(name: str, fallback: Any = None) -> Any:
    return os.environ.get(ENV_PREFIX + name, fallback)


def _float(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid config: {key} must be a number, got {value!r}") from None


def _int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid config: {key} must be an integer, got {value!r}") from None


def _optional_seconds(value: Any, key: str) -> Optional[float]:
    """Seconds, or None for an empty, ``none`` or ``null`` value in any case."""
    if value is None or str(value).strip().lower() in _NO_LIMIT_VALUES:
        return None
    return _float(value, key)


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config not found at {path}")
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config at {path}: expected a mapping")
    return data


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Invalid config: section '{name}' must be a mapping")
    return section


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Build the configuration from an optional YAML file and the environment.

    Environment variables (``PORTALBOT_*``) override file values. Portal
    base URL and credentials are required from one source or the other.
    Without ``path``, ``PORTALBOT_CONFIG`` names the file, if set.
    """
    if path is None and _env("CONFIG"):
        path = Path(_env("CONFIG"))
    data = _read_yaml(path) if path is not None else {}
    portal = _section(data, "portal")
    session = _section(data, "session")
    browser = _section(data, "browser")
    chat = _section(data, "chat")
    pipeline = _section(data, "pipeline")
    reference = _section(data, "reference")
    complaints = _section(data, "complaints")
    sla = _section(data, "sla")

    base_url = _env("PORTAL_URL", portal.get("base_url"))
    username = _env("PORTAL_USERNAME", portal.get("username"))
    password = _env("PORTAL_PASSWORD", portal.get("password"))
    missing = []
    if not base_url:
        missing.append(ENV_PREFIX + "PORTAL_URL")
    if not username:
        missing.append(ENV_PREFIX + "PORTAL_USERNAME")
    if not password:
        missing.append(ENV_PREFIX + "PORTAL_PASSWORD")
    if missing:
        raise ConfigError(f"Missing: {', '.join(missing)}")

    portal_config = PortalConfig(
        base_url=str(base_url).rstrip("/"),
        username=str(username),
        password=str(password),
        timeout=_float(_env("PORTAL_TIMEOUT", portal.get("timeout", 9.0)), "portal.timeout"),
    )
    for key in ("session_cookie", "auth_cookie", "form_token_field", "login_path"):
        if key in portal:
            portal_config = replace(portal_config, **{key: str(portal[key])})

    reply_timeout_raw = _env("CHAT_REPLY_TIMEOUT", chat.get("reply_timeout", 600.0))
    reply_timeout = _optional_seconds(reply_timeout_raw, "chat.reply_timeout")

    ref_defaults = ReferenceConfig()
    return AppConfig(
        portal=portal_config,
        session=SessionConfig(
            ttl=_float(_env("SESSION_TTL", session.get("ttl", 297.0)), "session.ttl"),
            refresh_threshold=_float(
                _env("SESSION_REFRESH_THRESHOLD", session.get("refresh_threshold", 285.0)), "session.refresh_threshold",
            ),
            login_attempts=_int(_env("LOGIN_ATTEMPTS", session.get("login_attempts", 3)), "session.login_attempts"),
            backoff_delay=_float(_env("LOGIN_BACKOFF", session.get("backoff_delay", 1.0)), "session.backoff_delay"),
        ),
        browser=BrowserConfig(
            executable_path=_env("BROWSER_PATH", browser.get("executable_path")),
            headless=_parse_bool(str(_env("BROWSER_HEADLESS", browser.get("headless", ""))), default=True),
            navigation_timeout=_float(browser.get("navigation_timeout", 60.0), "browser.navigation_timeout"),
            element_timeout=_float(browser.get("element_timeout", 15.0), "browser.element_timeout"),
        ),
        chat=ChatConfig(
            outbound_url=_env("CHAT_OUTBOUND_URL", chat.get("outbound_url", "http://localhost:3000/send")),
            secret=_env("CHAT_SECRET", chat.get("secret", "")),
            ignored_group=_env("CHAT_IGNORED_GROUP", chat.get("ignored_group", "")),
            reply_timeout=reply_timeout,
        ),
        pipeline=PipelineConfig(
            pass_delay=_float(_env("PASS_DELAY", pipeline.get("pass_delay", 2.0)), "pipeline.pass_delay"),
            max_stalled_passes=_int(
                _env("MAX_STALLED_PASSES", pipeline.get("max_stalled_passes", 3)), "pipeline.max_stalled_passes",
            ),
        ),
        reference=ReferenceConfig(
            users_file=Path(reference.get("users_file", ref_defaults.users_file)),
            partners_file=Path(reference.get("partners_file", ref_defaults.partners_file)),
            caf_partners_file=Path(reference.get("caf_partners_file", ref_defaults.caf_partners_file)),
        ),
        complaints=ComplaintConfig(
            base_url=_env("COMPLAINT_URL", complaints.get("base_url", "")),
            username=_env("COMPLAINT_USERNAME", complaints.get("username", "")),
            password=_env("COMPLAINT_PASSWORD", complaints.get("password", "")),
            ticket_owner=_env("COMPLAINT_TICKET_OWNER", complaints.get("ticket_owner", "")),
        ),
        sla=SlaConfig(
            base_url=_env("SLA_URL", sla.get("base_url", "")),
            username=_env("SLA_USERNAME", sla.get("username", "")),
            password=_env("SLA_PASSWORD", sla.get("password", "")),
        ),
        db_path=Path(_env("DB_PATH", data.get("db_path", "data/portalbot.db"))),
    )
