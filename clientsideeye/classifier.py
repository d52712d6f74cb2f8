import logging
from typing import Dict, List, Any, Optional, Sequence
from dataclasses import dataclass, field

from .survey import ElementSnapshot, SurveyResult
from .utils.markup import clip

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 4


@dataclass
class PasswordEvidence:
    """What was observed about a password field's value (previews only)."""
    has_value_in_property: bool
    value_property_preview: str
    has_value_in_attribute: bool
    value_attribute_preview: str
    autocomplete: Optional[str]

    @classmethod
    def from_probe(cls, probe: Dict[str, Any]) -> 'PasswordEvidence':
        return cls(
            has_value_in_property=bool(probe.get('hasValueInProperty')),
            value_property_preview=(probe.get('valuePropertyPreview') or '')[:PREVIEW_LENGTH],
            has_value_in_attribute=bool(probe.get('hasValueInAttribute')),
            value_attribute_preview=(probe.get('valueAttributePreview') or '')[:PREVIEW_LENGTH],
            autocomplete=probe.get('autocomplete') or None
        )

    @property
    def has_value(self) -> bool:
        return self.has_value_in_property or self.has_value_in_attribute

    def to_dict(self) -> Dict[str, Any]:
        return {
            'has_value_in_property': self.has_value_in_property,
            'value_property_preview': self.value_property_preview,
            'has_value_in_attribute': self.has_value_in_attribute,
            'value_attribute_preview': self.value_attribute_preview,
            'autocomplete': self.autocomplete
        }


@dataclass
class HiddenOrDisabledFinding:
    """A control concealed or disabled on the client side."""
    index: int
    snapshot: ElementSnapshot
    outer_html: str

    def to_dict(self) -> Dict[str, Any]:
        return {'index': self.index, **self.snapshot.to_dict(), 'outer_html': self.outer_html}


@dataclass
class PasswordMaskingFinding:
    """A password input whose value is readable from the page."""
    index: int
    snapshot: ElementSnapshot
    evidence: PasswordEvidence
    outer_html: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            **self.snapshot.to_dict(),
            'password_evidence': self.evidence.to_dict(),
            'outer_html': self.outer_html
        }


@dataclass
class RolePermissionFinding:
    """An element carrying role or permission marker attributes."""
    index: int
    snapshot: ElementSnapshot
    perm_hints: Dict[str, str]
    outer_html: str

    def to_dict(self) -> Dict[str, Any]:
        data = {'index': self.index, **self.snapshot.to_dict(), 'outer_html': self.outer_html}
        data['perm_hints'] = dict(self.perm_hints)
        return data


@dataclass
class Findings:
    """Classification buckets, each in survey (document) order."""
    hidden_or_disabled: List[HiddenOrDisabledFinding] = field(default_factory=list)
    password_masking: List[PasswordMaskingFinding] = field(default_factory=list)
    role_permission: List[RolePermissionFinding] = field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        return {
            'hidden_or_disabled_controls': len(self.hidden_or_disabled),
            'password_masking_issues': len(self.password_masking),
            'role_permission_hints': len(self.role_permission)
        }


def is_password_input(snapshot: ElementSnapshot) -> bool:
    return snapshot.tag == 'input' and (snapshot.type or '').lower() == 'password'


def classify_result(result: SurveyResult, findings: Findings) -> None:
    """
    Route one survey result into every bucket it qualifies for.

    Degraded results carry no snapshot and land nowhere.
    """
    if not result.ok:
        return

    snapshot = result.snapshot
    markup = clip(result.markup)

    if snapshot.is_hidden or snapshot.is_disabled:
        findings.hidden_or_disabled.append(HiddenOrDisabledFinding(
            index=result.index,
            snapshot=snapshot,
            outer_html=markup
        ))

    if is_password_input(snapshot) and result.password_probe:
        evidence = PasswordEvidence.from_probe(result.password_probe)
        # Empty password fields are not findings
        if evidence.has_value:
            findings.password_masking.append(PasswordMaskingFinding(
                index=result.index,
                snapshot=snapshot,
                evidence=evidence,
                outer_html=markup
            ))

    if snapshot.perm_hints:
        findings.role_permission.append(RolePermissionFinding(
            index=result.index,
            snapshot=snapshot,
            perm_hints=dict(snapshot.perm_hints),
            outer_html=markup
        ))


def classify(results: Sequence[SurveyResult]) -> Findings:
    """
    Classify survey results into finding buckets.

    Args:
        results: Survey results in document order

    Returns:
        Findings with hidden/disabled, password-masking and role-hint buckets
    """
    findings = Findings()
    seen = set()

    for result in results:
        if result.index in seen:
            logger.warning(f"Duplicate survey index #{result.index} skipped")
            continue
        seen.add(result.index)
        classify_result(result, findings)

    logger.info(f"Classification completed: {findings.counts()}")
    return findings
