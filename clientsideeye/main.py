import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import click
from pythonjsonlogger import jsonlogger

from . import __tool__, __version__
from .config import (AuditConfig, BrowserConfig, Mode, Scope, StdoutMode, FocusTarget,
                     DEFAULT_LIMIT, DEFAULT_MAX_ITEMS, DEFAULT_OUTPUT_FILE, load_config, validate_config)
from .classifier import classify
from .errors import ArgumentError
from .identities import SessionCapsule, create_session
from .inspector import FocusResult, focus_finding
from .mutator import MutationEngine
from .redaction import redact_report
from .report import Report, create_report
from .reporter import AuditReporter, serialize
from .survey import DOMSurvey
from .utils.browser import PlaywrightSurface, RenderingSurface

logger = logging.getLogger(__name__)

SurfaceFactory = Callable[[BrowserConfig, SessionCapsule], RenderingSurface]

LOG_HANDLER_NAME = "clientsideeye"


def setup_logging(log_level: str = "WARNING", log_file: Optional[str] = None):
    """Setup structured logging on stderr (stdout carries the report)."""
    loggers = [logging.getLogger(name) for name in ['clientsideeye', '__main__']]

    formatter = jsonlogger.JsonFormatter(
        fmt='%(asctime)s %(name)s %(levelname)s %(message)s'
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.set_name(LOG_HANDLER_NAME)

    for logger_instance in loggers:
        # Replace handlers from an earlier call in the same process
        for handler in [h for h in logger_instance.handlers if h.get_name() == LOG_HANDLER_NAME]:
            logger_instance.removeHandler(handler)
            handler.close()
        logger_instance.setLevel(getattr(logging, log_level.upper()))
        logger_instance.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.set_name(LOG_HANDLER_NAME)
        for logger_instance in loggers:
            logger_instance.addHandler(file_handler)


@dataclass
class AuditResult:
    """What a completed run produced."""
    report: Report
    document: Dict[str, Any]
    artifact_path: str
    focus: Optional[FocusResult] = None


class ClientSideAuditor:
    """Runs one audit: navigate, survey, classify, mutate, then persist and render."""

    def __init__(self,
                 config: AuditConfig,
                 surface_factory: Optional[SurfaceFactory] = None,
                 echo: Callable[[str], None] = click.echo,
                 notify: Optional[Callable[[str], None]] = None):
        """
        Initialize the auditor.

        Args:
            config: Validated audit configuration
            surface_factory: Builds the rendering surface (Playwright by default)
            echo: Output function for the terminal summary
            notify: Output function for notices that must stay off a JSON stdout (stderr by default)
        """
        self.config = config
        self.surface_factory = surface_factory or PlaywrightSurface
        self.echo = echo
        self.notify = notify or (lambda text: click.echo(text, err=True))
        self.reporter = AuditReporter(
            max_items=config.output.max_items,
            show_html=config.output.show_html
        )

    async def run(self) -> AuditResult:
        """Execute the complete audit."""
        config = self.config
        report = create_report(config)
        session = create_session(config.auth, config.url)

        async with self.surface_factory(config.browser, session) as surface:
            surface.on_request(report.record_request)

            report = await self._navigation_phase(surface, report)
            report, survey = await self._survey_phase(surface, report)
            report = await self._mutation_phase(surface, report, survey.elements)
            focus = await self._focus_phase(report, survey.elements)

            report = report.finalize()
            document, artifact_path = self._persistence_phase(report)
            self._render_phase(report, document, artifact_path, focus)

            if config.inspect.pause and not config.browser.headless:
                self._notice("\nPaused. Close the browser window or press Ctrl+C to exit.")
                await surface.wait_until_closed()

        return AuditResult(report=report, document=document, artifact_path=artifact_path, focus=focus)

    async def _navigation_phase(self, surface: RenderingSurface, report: Report) -> Report:
        logger.info(f"Phase 1: Navigating to {self.config.url}")
        loaded_url = await surface.navigate(self.config.url, self.config.browser.wait_ms)
        return report.set_loaded_url(loaded_url)

    async def _survey_phase(self, surface: RenderingSurface, report: Report):
        logger.info("Phase 2: Survey and classification")
        survey = await DOMSurvey(self.config.scope, self.config.limit).run(surface)
        findings = classify(survey.results)
        return report.with_findings(findings), survey

    async def _mutation_phase(self, surface: RenderingSurface, report: Report, elements) -> Report:
        logger.info(f"Phase 3: Mutation ({self.config.mode.value})")
        engine = MutationEngine(self.config.mode)
        outcome = await engine.run(surface, report.findings.hidden_or_disabled, elements)
        return report.with_mutations(outcome)

    async def _focus_phase(self, report: Report, elements) -> Optional[FocusResult]:
        target = self.config.inspect.focus
        if target is None or self.config.browser.headless:
            return None
        return await focus_finding(target, report.findings, elements)

    def _persistence_phase(self, report: Report):
        logger.info(f"Phase 4: Persistence (redact={self.config.output.redact})")
        document = redact_report(report) if self.config.output.redact else report.to_dict()
        artifact_path = self.reporter.write_artifact(document, self.config.output.out)
        return document, artifact_path

    def _render_phase(self, report: Report, document: Dict[str, Any], artifact_path: str,
                      focus: Optional[FocusResult]):
        output = self.config.output

        if output.stdout_mode is StdoutMode.JSON:
            self.echo(serialize(document))
        elif output.quiet:
            self.echo(self.reporter.render_quiet(report, artifact_path))
        else:
            self.echo(self.reporter.render_text(report))

        target = self.config.inspect.focus
        if target is not None and not self.config.browser.headless:
            if focus is None:
                self._notice(f"\nNo focus target found for --focus {target.value}")
            else:
                self._notice("\n".join(focus.describe()))

    def _notice(self, text: str):
        if self.config.output.stdout_mode is StdoutMode.JSON:
            self.notify(text)
        else:
            self.echo(text)


@click.command(
    context_settings={'help_option_names': ['-h', '--help']},
    help=f"{__tool__}: client-side control auditor for authorized security testing.\n\n"
         "Surveys a live page for hidden or disabled controls, readable password fields "
         "and role/permission markers, optionally reverses the concealment, and writes a "
         "JSON report (secrets redacted by default).\n\n"
         "Environment: HEADLESS=0 shows the browser; WAIT_MS, AUDIT_HEADERS (newline separated), "
         "AUDIT_COOKIES (semicolon separated) and AUDIT_STORAGE_STATE supply defaults."
)
@click.argument('url', required=False)
@click.option('--storage-state', default=None, help='Playwright storage state file (best for SSO/MFA)')
@click.option('--header', 'headers', multiple=True, help='Extra HTTP header "Name: value" (repeatable)')
@click.option('--cookie', 'cookies', multiple=True, help='Cookie "name=value" (repeatable)')
@click.option('--mode', type=click.Choice([m.value for m in Mode], case_sensitive=False),
              default=Mode.REPORT.value, show_default=True,
              help='report: detect only; soft-unhide: reveal hidden elements; aggressive: also re-enable disabled ones')
@click.option('--scope', type=click.Choice([s.value for s in Scope], case_sensitive=False),
              default=Scope.ALL.value, show_default=True, help='Candidate element set')
@click.option('--out', default=DEFAULT_OUTPUT_FILE, show_default=True, help='Report file path')
@click.option('--output', 'stdout_mode', type=click.Choice([m.value for m in StdoutMode], case_sensitive=False),
              default=StdoutMode.TEXT.value, show_default=True, help='What goes to stdout (the JSON file is always written)')
@click.option('--quiet', is_flag=True, help='Single summary line on stdout')
@click.option('--max-items', type=int, default=DEFAULT_MAX_ITEMS, show_default=True, help='Items printed per section')
@click.option('--show-html', is_flag=True, help='Include clipped outerHTML on stdout')
@click.option('--no-redact', is_flag=True, help='Write raw auth values into the JSON file (NOT recommended)')
@click.option('--devtools', is_flag=True, help='Open DevTools (headed only)')
@click.option('--focus', type=click.Choice([f.value for f in FocusTarget], case_sensitive=False), default=None,
              help='Scroll to and outline the first matching finding (headed only)')
@click.option('--pause', is_flag=True, help='Keep the browser open after the scan (headed only)')
@click.option('--wait-ms', type=int, default=None, help='Settle delay after load [default: 5000]')
@click.option('--limit', type=int, default=DEFAULT_LIMIT, show_default=True, help='Maximum elements inspected')
@click.option('--log-level', default='WARNING', show_default=True, help='Logging level')
@click.option('--log-file', default=None, help='Also write JSON logs to this file')
@click.version_option(__version__, '-v', '--version', message=f"{__tool__} v%(version)s")
@click.pass_context
def app(ctx, url, storage_state, headers, cookies, mode, scope, out, stdout_mode, quiet, max_items,
        show_html, no_redact, devtools, focus, pause, wait_ms, limit, log_level, log_file):
    """Audit a page for client-side-only access controls."""
    if not url:
        click.echo(ctx.get_help())
        sys.exit(1)

    setup_logging(log_level, log_file)

    try:
        config = load_config(
            url,
            mode=mode,
            scope=scope,
            headers=headers,
            cookies=cookies,
            storage_state=storage_state,
            out=out,
            stdout_mode=stdout_mode,
            quiet=quiet,
            max_items=max_items,
            show_html=show_html,
            redact=not no_redact,
            devtools=devtools,
            focus=focus,
            pause=pause,
            wait_ms=wait_ms,
            limit=limit
        )
        validate_config(config)
    except ArgumentError as e:
        click.echo(f"Argument error: {e}", err=True)
        click.echo('Run "clientsideeye --help" for usage.', err=True)
        sys.exit(2)

    try:
        asyncio.run(ClientSideAuditor(config).run())
    except Exception as e:
        click.echo(f"Audit failed: {e}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("Audit interrupted by user", err=True)
        sys.exit(1)


if __name__ == "__main__":
    app()
