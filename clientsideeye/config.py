import os
import logging
from pathlib import Path
from enum import Enum
from typing import Dict, List, Any, Optional, Mapping, Sequence
from urllib.parse import urlparse
from dataclasses import dataclass, field

from .errors import ArgumentError

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_FILE = "client_controls_report.json"
DEFAULT_WAIT_MS = 5000
DEFAULT_LIMIT = 250
DEFAULT_MAX_ITEMS = 20


class Mode(Enum):
    """Mutation mode, fixed for the whole run."""
    REPORT = "report"
    SOFT_UNHIDE = "soft-unhide"
    AGGRESSIVE = "aggressive"

    @property
    def mutates_dom(self) -> bool:
        return self is not Mode.REPORT

    @property
    def reverses_disabled(self) -> bool:
        return self is Mode.AGGRESSIVE


class Scope(Enum):
    """Which candidate selector set the survey uses."""
    ALL = "all"
    BUTTONS = "buttons"


class StdoutMode(Enum):
    TEXT = "text"
    JSON = "json"


class FocusTarget(Enum):
    PASSWORD = "password"
    HIDDEN = "hidden"


@dataclass
class CookiePair:
    """A cookie supplied on the command line or through AUDIT_COOKIES."""
    name: str
    value: str

    def to_dict(self) -> Dict[str, str]:
        return {'name': self.name, 'value': self.value}


@dataclass
class AuthConfig:
    """Authentication material injected into the browsing context."""
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: List[CookiePair] = field(default_factory=list)
    storage_state: Optional[str] = None


@dataclass
class BrowserConfig:
    """Browser launch and timing options."""
    headless: bool = True
    devtools: bool = False
    wait_ms: int = DEFAULT_WAIT_MS
    viewport_width: int = 1280
    viewport_height: int = 800


@dataclass
class OutputConfig:
    """Persisted artifact and terminal output options."""
    out: str = DEFAULT_OUTPUT_FILE
    stdout_mode: StdoutMode = StdoutMode.TEXT
    quiet: bool = False
    max_items: int = DEFAULT_MAX_ITEMS
    show_html: bool = False
    redact: bool = True


@dataclass
class InspectConfig:
    """Headed-browser inspection helpers."""
    focus: Optional[FocusTarget] = None
    pause: bool = False


@dataclass
class AuditConfig:
    """Complete audit configuration."""
    url: str
    mode: Mode = Mode.REPORT
    scope: Scope = Scope.ALL
    limit: int = DEFAULT_LIMIT
    auth: AuthConfig = field(default_factory=AuthConfig)
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    inspect: InspectConfig = field(default_factory=InspectConfig)


def parse_header_lines(lines: Sequence[str]) -> Dict[str, str]:
    """
    Parse "Name: value" header lines.

    Args:
        lines: Header lines; later duplicates override earlier ones

    Returns:
        Mapping of header name to value

    Raises:
        ArgumentError: If a line has no colon or an empty name
    """
    headers = {}
    for line in lines:
        name, sep, value = line.partition(':')
        if not sep:
            raise ArgumentError(f'Bad --header format "{line}". Use "Name: value"')
        name = name.strip()
        if not name:
            raise ArgumentError(f'Bad --header name in "{line}"')
        headers[name] = value.strip()
    return headers


def parse_cookie_pairs(pairs: Sequence[str]) -> List[CookiePair]:
    """
    Parse "name=value" cookie pairs.

    Raises:
        ArgumentError: If a pair has no equals sign
    """
    cookies = []
    for pair in pairs:
        name, sep, value = pair.partition('=')
        if not sep:
            raise ArgumentError(f'Bad --cookie format "{pair}". Use "name=value"')
        cookies.append(CookiePair(name=name.strip(), value=value.strip()))
    return cookies


def _env_header_lines(environ: Mapping[str, str]) -> List[str]:
    raw = environ.get('AUDIT_HEADERS', '')
    return [line for line in raw.split('\n') if line]


def _env_cookie_pairs(environ: Mapping[str, str]) -> List[str]:
    raw = environ.get('AUDIT_COOKIES', '')
    return [pair.strip() for pair in raw.split(';') if pair.strip()]


def _env_headless(environ: Mapping[str, str]) -> bool:
    value = environ.get('HEADLESS')
    if not value:
        return True
    return value != '0'


def load_config(url: str,
                mode: str = Mode.REPORT.value,
                scope: str = Scope.ALL.value,
                headers: Sequence[str] = (),
                cookies: Sequence[str] = (),
                storage_state: Optional[str] = None,
                out: str = DEFAULT_OUTPUT_FILE,
                stdout_mode: str = StdoutMode.TEXT.value,
                quiet: bool = False,
                max_items: int = DEFAULT_MAX_ITEMS,
                show_html: bool = False,
                redact: bool = True,
                devtools: bool = False,
                focus: Optional[str] = None,
                pause: bool = False,
                wait_ms: Optional[int] = None,
                limit: int = DEFAULT_LIMIT,
                environ: Optional[Mapping[str, str]] = None) -> AuditConfig:
    """
    Build an audit configuration from command line values and the environment.

    Header and cookie values from the command line come first; values from
    AUDIT_HEADERS and AUDIT_COOKIES are appended after them.

    Args:
        url: Target page URL
        environ: Environment mapping (defaults to os.environ)

    Returns:
        AuditConfig for the run

    Raises:
        ArgumentError: If any value is malformed
    """
    environ = os.environ if environ is None else environ

    try:
        mode_value = Mode(mode.lower())
    except ValueError:
        raise ArgumentError(f"Invalid --mode={mode}. Use report|soft-unhide|aggressive")
    try:
        scope_value = Scope(scope.lower())
    except ValueError:
        raise ArgumentError(f"Invalid --scope={scope}. Use all|buttons")
    try:
        stdout_value = StdoutMode(stdout_mode.lower())
    except ValueError:
        raise ArgumentError(f"Invalid --output={stdout_mode}. Use text|json")
    try:
        focus_value = FocusTarget(focus.lower()) if focus else None
    except ValueError:
        raise ArgumentError(f"Invalid --focus={focus}. Use password|hidden")

    header_map = parse_header_lines(list(headers) + _env_header_lines(environ))
    cookie_pairs = parse_cookie_pairs(list(cookies) + _env_cookie_pairs(environ))

    if wait_ms is None:
        env_wait = environ.get('WAIT_MS')
        try:
            wait_ms = int(env_wait) if env_wait else DEFAULT_WAIT_MS
        except ValueError:
            raise ArgumentError(f"Invalid WAIT_MS={env_wait}")

    config = AuditConfig(
        url=url,
        mode=mode_value,
        scope=scope_value,
        limit=limit,
        auth=AuthConfig(
            headers=header_map,
            cookies=cookie_pairs,
            storage_state=storage_state or environ.get('AUDIT_STORAGE_STATE') or None
        ),
        browser=BrowserConfig(
            headless=_env_headless(environ),
            devtools=devtools,
            wait_ms=wait_ms
        ),
        output=OutputConfig(
            out=out,
            stdout_mode=stdout_value,
            quiet=quiet,
            max_items=max_items,
            show_html=show_html,
            redact=redact
        ),
        inspect=InspectConfig(focus=focus_value, pause=pause)
    )

    logger.info(f"Configuration loaded: mode={config.mode.value} scope={config.scope.value}")
    logger.info(f"Headers: {', '.join(header_map.keys()) or 'none'}")
    logger.info(f"Cookies: {', '.join(c.name for c in cookie_pairs) or 'none'}")

    return config


def validate_config(config: AuditConfig) -> bool:
    """
    Validate configuration for common issues.

    Returns:
        True if configuration is valid

    Raises:
        ArgumentError: If configuration has validation errors
    """
    errors = []

    parsed = urlparse(config.url)
    if not parsed.scheme or not parsed.netloc:
        errors.append(f"Invalid URL: {config.url}")

    if config.limit <= 0:
        errors.append("--limit must be positive")

    if config.browser.wait_ms < 0:
        errors.append("--wait-ms must not be negative")

    if config.output.max_items < 0:
        errors.append("--max-items must not be negative")

    for cookie in config.auth.cookies:
        if not cookie.name:
            errors.append("Cookie name must not be empty")

    if config.auth.storage_state and not Path(config.auth.storage_state).exists():
        errors.append(f"Storage state file not found: {config.auth.storage_state}")

    if errors:
        error_message = "\n".join(errors)
        logger.error(f"Configuration validation failed: {error_message}")
        raise ArgumentError(error_message)

    return True


def describe_auth(config: AuditConfig) -> Dict[str, Any]:
    """Auth block for the report meta section (values are redacted later, not here)."""
    return {
        'storage_state': config.auth.storage_state,
        'headers': dict(config.auth.headers) if config.auth.headers else None,
        'cookies': [c.to_dict() for c in config.auth.cookies] if config.auth.cookies else None
    }
