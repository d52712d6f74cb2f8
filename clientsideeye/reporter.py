import json
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional, Callable, Sequence

from .report import Report
from .utils.markup import pad_right

logger = logging.getLogger(__name__)


def serialize(document: Dict[str, Any]) -> str:
    """Deterministic pretty-printed JSON for the persisted artifact and JSON stdout."""
    return json.dumps(document, indent=2, ensure_ascii=False, default=str)


def _where(item) -> str:
    return f"{item.snapshot.tag}:{item.snapshot.type}" if item.snapshot.type else item.snapshot.tag


class AuditReporter:
    """Writes the persisted artifact and renders the terminal summary."""

    def __init__(self, max_items: int = 20, show_html: bool = False):
        """
        Initialize the reporter.

        Args:
            max_items: Maximum entries printed per bucket
            show_html: Include clipped markup in the terminal summary
        """
        self.max_items = max_items
        self.show_html = show_html

    def write_artifact(self, document: Dict[str, Any], out: str) -> str:
        """
        Persist a (possibly redacted) report document.

        Args:
            document: Serialized report
            out: Destination path

        Returns:
            Path of the written file
        """
        path = Path(out)
        if path.parent and not path.parent.exists():
            path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w', encoding='utf-8') as f:
            f.write(serialize(document))

        logger.info(f"Report written to {path}")
        return str(path)

    def render_quiet(self, report: Report, artifact_path: str) -> str:
        """Single summary line with bucket counts and the artifact path."""
        findings = report.findings
        return (
            f"✓ ClientSideEye: hidden/disabled={len(findings.hidden_or_disabled)} "
            f"passwords={len(findings.password_masking)} "
            f"roleHints={len(findings.role_permission)} report={artifact_path}"
        )

    def render_text(self, report: Report) -> str:
        """
        Render the terminal summary from the unredacted report.

        Order: header, password masking, hidden/disabled table, role hints,
        applied changes (mutation modes only), triage notes.
        """
        lines: List[str] = []
        self._render_header(report, lines)
        self._render_bucket(
            lines, "Password masking issues", report.findings.password_masking, self._password_entry
        )
        self._render_hidden_table(report, lines)
        self._render_bucket(
            lines, "Role/permission hints", report.findings.role_permission, self._role_entry
        )
        if report.meta.mode.mutates_dom:
            self._render_bucket(lines, "DOM changes applied", report.changes, self._change_entry)
        self._render_triage(report, lines)
        return "\n".join(lines)

    def _render_header(self, report: Report, lines: List[str]):
        meta = report.meta
        lines.append("")
        lines.append(f"{meta.tool} v{meta.version}")
        lines.append(f"Target:      {meta.url}")
        lines.append(f"Loaded URL:  {meta.loaded_url}")
        lines.append(f"Mode:        {meta.mode.value} | Scope: {meta.scope} | Headless: {str(meta.headless).lower()}")
        lines.append(f"Report file: {meta.output_file}")
        if report.unhide_summary is not None:
            summary = report.unhide_summary
            lines.append(
                f"Unhide:      {summary.modified_count} of {summary.candidates_before} candidates modified"
            )

    def _section(self, lines: List[str], title: str):
        lines.append("")
        lines.append(f"=== {title} ===")

    def _overflow(self, lines: List[str], total: int):
        if total > self.max_items:
            lines.append(
                f"... ({total - self.max_items} more not shown; use --max-items to increase)"
            )

    def _render_bucket(self, lines: List[str], title: str, items: Sequence[Any],
                       entry: Callable[[Any, List[str]], None]):
        self._section(lines, f"{title} ({len(items)})")
        if not items:
            lines.append("(none)")
            return
        for item in items[:self.max_items]:
            entry(item, lines)
        self._overflow(lines, len(items))

    def _markup(self, outer_html: Optional[str], lines: List[str]):
        if self.show_html and outer_html:
            lines.append(f"  outerHTML: {outer_html}")

    def _password_entry(self, item, lines: List[str]):
        snapshot = item.snapshot
        evidence = item.evidence
        lines.append(
            f"- [#{item.index}] {_where(item)} id={snapshot.id or '-'} "
            f"name={snapshot.name or '-'} text=\"{snapshot.text}\""
        )
        lines.append(
            f"  Evidence: valueProperty={'YES' if evidence.has_value_in_property else 'no'} "
            f"valueAttr={'YES' if evidence.has_value_in_attribute else 'no'} "
            f"autocomplete={evidence.autocomplete or '-'}"
        )
        lines.append(f"  Path: {snapshot.path or '-'}")
        self._markup(item.outer_html, lines)

    def _role_entry(self, item, lines: List[str]):
        snapshot = item.snapshot
        lines.append(f"- [#{item.index}] {_where(item)} id={snapshot.id or '-'} name={snapshot.name or '-'}")
        lines.append(f"  Hints: {json.dumps(item.perm_hints, ensure_ascii=False)}")
        lines.append(f"  Path: {snapshot.path or '-'}")
        self._markup(item.outer_html, lines)

    def _change_entry(self, record, lines: List[str]):
        where = f"{record.tag}:{record.type}" if record.type else record.tag
        lines.append(
            f"- [#{record.index}] {where} id={record.id or '-'} "
            f"name={record.name or '-'} text=\"{record.text}\""
        )
        lines.append(f"  Applied: {', '.join(record.applied) or '-'}")

    def _render_hidden_table(self, report: Report, lines: List[str]):
        items = report.findings.hidden_or_disabled
        self._section(lines, f"Hidden/disabled controls ({len(items)})")
        if not items:
            lines.append("(none)")
            return

        lines.append(
            f"{pad_right('IDX', 5)}{pad_right('TAG', 10)}{pad_right('ID/NAME', 28)}"
            f"{pad_right('TEXT/HREF', 38)}WHY"
        )
        for item in items[:self.max_items]:
            snapshot = item.snapshot
            if snapshot.id:
                id_name = f"#{snapshot.id}"
            elif snapshot.name:
                id_name = f"name={snapshot.name}"
            else:
                id_name = "-"
            text_href = snapshot.href or snapshot.text or ""
            why = ", ".join(snapshot.hidden_by + snapshot.disabled_by)
            lines.append(
                f"{pad_right(f'#{item.index}', 5)}{pad_right(_where(item), 10)}"
                f"{pad_right(id_name, 28)}{pad_right(text_href, 38)}{why}"
            )
            self._markup(item.outer_html, lines)
        self._overflow(lines, len(items))

    def _render_triage(self, report: Report, lines: List[str]):
        findings = report.findings
        self._section(lines, "Triage notes")
        if findings.password_masking:
            lines.append(
                "- Password masking issue detected. Check whether low-privilege users can read or derive the secret."
            )
        if findings.hidden_or_disabled:
            lines.append(
                "- Hidden/disabled controls detected. Replay their underlying requests and confirm "
                "the server enforces authorization."
            )
        if findings.role_permission:
            lines.append(
                "- Role/permission attributes present. Compare them across accounts with different privileges."
            )
        if not (findings.password_masking or findings.hidden_or_disabled or findings.role_permission):
            lines.append("- No obvious client-side control signals found with current scope.")
