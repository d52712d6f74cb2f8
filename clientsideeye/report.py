import logging
from datetime import datetime, timezone
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field

from . import __tool__, __version__
from .config import AuditConfig, Mode, describe_auth
from .classifier import Findings
from .mutator import MutationOutcome, MutationRecord, UnhideSummary
from .utils.browser import RequestEvent

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ReportFrozenError(RuntimeError):
    """Raised when a finalized report is modified."""


@dataclass
class NetworkLog:
    """Append-only log of requests in initiation order (no deduplication)."""
    requests: List[RequestEvent] = field(default_factory=list)

    def record(self, event: RequestEvent):
        self.requests.append(event)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'requests': [
                {
                    'ts': event.ts,
                    'method': event.method,
                    'url': event.url,
                    'resource_type': event.resource_type
                }
                for event in self.requests
            ]
        }


@dataclass
class ReportMeta:
    """Run identity, target, options and auth material."""
    url: str
    mode: Mode
    scope: str
    limit: int
    headless: bool
    wait_ms: int
    output_file: str
    stdout_mode: str
    auth: Dict[str, Any]
    tool: str = __tool__
    version: str = __version__
    generated_at: str = field(default_factory=utc_now)
    completed_at: Optional[str] = None
    loaded_url: Optional[str] = None

    @classmethod
    def from_config(cls, config: AuditConfig) -> 'ReportMeta':
        return cls(
            url=config.url,
            mode=config.mode,
            scope=config.scope.value,
            limit=config.limit,
            headless=config.browser.headless,
            wait_ms=config.browser.wait_ms,
            output_file=config.output.out,
            stdout_mode=config.output.stdout_mode.value,
            auth=describe_auth(config)
        )


@dataclass
class Report:
    """
    Aggregate root for one audit run.

    Populated by the survey/classification and mutation stages, then frozen
    before redaction and rendering.
    """
    meta: ReportMeta
    network: NetworkLog = field(default_factory=NetworkLog)
    findings: Findings = field(default_factory=Findings)
    changes: List[MutationRecord] = field(default_factory=list)
    unhide_summary: Optional[UnhideSummary] = None
    _frozen: bool = field(default=False, repr=False)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_open(self):
        if self._frozen:
            raise ReportFrozenError("Report is finalized")

    def record_request(self, event: RequestEvent):
        # Late network events after finalization are dropped, not errors
        if not self._frozen:
            self.network.record(event)

    def set_loaded_url(self, url: str) -> 'Report':
        self._check_open()
        self.meta.loaded_url = url
        return self

    def with_findings(self, findings: Findings) -> 'Report':
        self._check_open()
        self.findings = findings
        return self

    def with_mutations(self, outcome: MutationOutcome) -> 'Report':
        self._check_open()
        self.changes = list(outcome.records)
        self.unhide_summary = outcome.summary
        return self

    def finalize(self) -> 'Report':
        """Stamp the completion time and freeze the report."""
        if not self._frozen:
            self.meta.completed_at = utc_now()
            self._frozen = True
        return self

    def counts(self) -> Dict[str, int]:
        counts = self.findings.counts()
        counts['post_unhide_changes'] = len(self.changes)
        return counts

    def to_dict(self) -> Dict[str, Any]:
        """Persisted artifact schema: {meta, network, findings}."""
        meta = {
            'tool': self.meta.tool,
            'version': self.meta.version,
            'url': self.meta.url,
            'loaded_url': self.meta.loaded_url,
            'generated_at': self.meta.generated_at,
            'completed_at': self.meta.completed_at,
            'headless': self.meta.headless,
            'wait_ms': self.meta.wait_ms,
            'mode': self.meta.mode.value,
            'scope': self.meta.scope,
            'limit': self.meta.limit,
            'output_file': self.meta.output_file,
            'stdout_mode': self.meta.stdout_mode,
            'auth': self.meta.auth
        }
        if self.unhide_summary is not None:
            meta['unhide_summary'] = self.unhide_summary.to_dict()

        return {
            'meta': meta,
            'network': self.network.to_dict(),
            'findings': {
                'hidden_or_disabled_controls': [f.to_dict() for f in self.findings.hidden_or_disabled],
                'password_masking_issues': [f.to_dict() for f in self.findings.password_masking],
                'role_permission_hints': [f.to_dict() for f in self.findings.role_permission],
                'post_unhide_changes': [c.to_dict() for c in self.changes]
            }
        }


def create_report(config: AuditConfig) -> Report:
    """Create the empty report for a run."""
    return Report(meta=ReportMeta.from_config(config))
