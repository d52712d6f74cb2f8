"""
ClientSideEye - audit web pages for client-side-only access controls.

This package surveys a live, authenticated page for controls that the UI hides or
disables while the underlying requests may still be reachable, optionally reverses
that concealment in a recorded way, and produces a redacted report for follow-up.
"""

__version__ = "0.1.0"
__tool__ = "ClientSideEye"

from .config import AuditConfig, Mode, Scope, load_config, validate_config
from .survey import DOMSurvey, ElementSnapshot, SurveyResult
from .classifier import Findings, classify
from .mutator import MutationEngine, MutationRecord
from .redaction import redact_report
from .report import Report, create_report
from .reporter import AuditReporter

__all__ = [
    'AuditConfig',
    'Mode',
    'Scope',
    'load_config',
    'validate_config',
    'DOMSurvey',
    'ElementSnapshot',
    'SurveyResult',
    'Findings',
    'classify',
    'MutationEngine',
    'MutationRecord',
    'redact_report',
    'Report',
    'create_report',
    'AuditReporter'
]
