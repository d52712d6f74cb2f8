import logging
from typing import Dict, Any, List, Optional
from urllib.parse import urlparse
from dataclasses import dataclass, field

from .config import AuthConfig

logger = logging.getLogger(__name__)


@dataclass
class SessionCapsule:
    """Authentication material scoped to the target's browsing context."""
    target_url: str
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: List[Dict[str, Any]] = field(default_factory=list)
    storage_state: Optional[str] = None

    @property
    def auth_type(self) -> str:
        """Short label describing which kinds of auth material are present."""
        kinds = []
        if self.storage_state:
            kinds.append('storage_state')
        if self.headers:
            kinds.append('headers')
        if self.cookies:
            kinds.append('cookies')
        return '+'.join(kinds) or 'none'


def browser_cookies(auth: AuthConfig, target_url: str) -> List[Dict[str, Any]]:
    """
    Scope cookie pairs to the target host for injection into a browser context.

    Args:
        auth: Authentication configuration
        target_url: URL of the audited page

    Returns:
        Cookie dictionaries (name, value, domain, path, secure)
    """
    parsed = urlparse(target_url)
    domain = parsed.hostname or ''
    secure = parsed.scheme == 'https'

    return [
        {
            'name': cookie.name,
            'value': cookie.value,
            'domain': domain,
            'path': '/',
            'secure': secure
        }
        for cookie in auth.cookies
    ]


def create_session(auth: AuthConfig, target_url: str) -> SessionCapsule:
    """
    Create the session capsule for one audit run.

    Args:
        auth: Authentication configuration
        target_url: URL of the audited page

    Returns:
        SessionCapsule ready to hand to the rendering surface
    """
    capsule = SessionCapsule(
        target_url=target_url,
        headers=dict(auth.headers),
        cookies=browser_cookies(auth, target_url),
        storage_state=auth.storage_state
    )

    # Header and cookie names only, never values
    logger.info(f"Session prepared ({capsule.auth_type}) for {target_url}")
    logger.debug(f"Header names: {list(capsule.headers.keys())}, cookie names: {[c['name'] for c in capsule.cookies]}")

    return capsule
