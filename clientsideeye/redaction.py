"""
Secret scrubbing for the persisted report.

The pipeline works on a deep copy of the report's serialized form; the
in-memory report (used for terminal rendering) is never modified.
"""

import re
import copy
import logging
from typing import Dict, Any

from .report import Report
from .utils.markup import ELLIPSIS, scrub_value_attributes

logger = logging.getLogger(__name__)

REDACTED_MARKER = ELLIPSIS
SENSITIVE_HEADER_PATTERN = re.compile(r'authorization|cookie|token|api[-_]?key|secret', re.IGNORECASE)
SHORT_SECRET_LENGTH = 8

MARKUP_BUCKETS = ('hidden_or_disabled_controls', 'password_masking_issues', 'role_permission_hints')


def redact_value(value: Any) -> str:
    """
    Mask a secret value.

    Values of 8 characters or fewer (and non-strings) become an opaque marker;
    longer ones keep the first 4 and last 2 characters around an ellipsis.
    """
    if not isinstance(value, str) or len(value) <= SHORT_SECRET_LENGTH:
        return REDACTED_MARKER
    return f"{value[:4]}{ELLIPSIS}{value[-2:]}"


def redact_headers(headers: Dict[str, Any]) -> Dict[str, Any]:
    return {
        name: redact_value(value) if SENSITIVE_HEADER_PATTERN.search(name) else value
        for name, value in headers.items()
    }


def redact_report(report: Report) -> Dict[str, Any]:
    """
    Produce a secret-scrubbed copy of a report for persistence.

    Args:
        report: Finalized report

    Returns:
        Serialized report with auth headers, cookie values and value="..." markup masked
    """
    redacted = copy.deepcopy(report.to_dict())
    auth = redacted.get('meta', {}).get('auth') or {}

    if auth.get('headers'):
        auth['headers'] = redact_headers(auth['headers'])

    if isinstance(auth.get('cookies'), list):
        auth['cookies'] = [
            {**cookie, 'value': redact_value(cookie.get('value'))}
            for cookie in auth['cookies']
        ]

    findings = redacted.get('findings', {})
    for bucket in MARKUP_BUCKETS:
        for item in findings.get(bucket) or []:
            if item.get('outer_html'):
                item['outer_html'] = scrub_value_attributes(item['outer_html'])

    logger.debug("Report redacted")
    return redacted
