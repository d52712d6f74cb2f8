import re
import logging
from typing import Dict, List, Any, Optional, Callable, Sequence
from dataclasses import dataclass, field

from .config import Scope
from .errors import ElementEvaluationError
from .utils.browser import ElementRef, RenderingSurface
from .utils.markup import has_disabled_class

logger = logging.getLogger(__name__)

TEXT_LIMIT = 200

# Input types whose value is a rendered label rather than user or server data
LABEL_VALUE_TYPES = frozenset({"button", "submit", "reset"})
PATH_DEPTH = 6

SELECTORS_BY_SCOPE = {
    Scope.ALL: ",".join([
        "button",
        "a[href]",
        "input",
        "select",
        "textarea",
        "[role='button']",
        "[onclick]",
        "[data-action]",
        "[data-testid]",
    ]),
    Scope.BUTTONS: ",".join([
        "button",
        "[role='button']",
        "a[href]",
        "[onclick]",
        "[data-action]",
    ]),
}

PERMISSION_HINT_PATTERN = re.compile(
    r'role|permission|perm|admin|owner|scope|policy|acl|feature|flag',
    re.IGNORECASE
)

# Raw facts only; every classification decision is made by the rule tables below.
SURVEY_SCRIPT = """
(el, depth) => {
  const cs = window.getComputedStyle(el);
  const rect = el.getBoundingClientRect();
  const tag = el.tagName.toLowerCase();
  const type = tag === "input" ? (el.getAttribute("type") || "text") : null;

  const path = [];
  let cur = el;
  while (cur && cur.nodeType === 1 && path.length < depth) {
    const position = cur.parentElement
      ? Array.from(cur.parentElement.children).indexOf(cur) + 1
      : 1;
    path.unshift({ tag: cur.tagName.toLowerCase(), id: cur.id || null, position });
    cur = cur.parentElement;
  }

  let password = null;
  if (tag === "input" && (type || "").toLowerCase() === "password") {
    const val = el.value || "";
    const valueAttr = el.getAttribute("value");
    password = {
      hasValueInProperty: val.length > 0,
      valuePropertyPreview: val.slice(0, 4),
      hasValueInAttribute: valueAttr != null && valueAttr.length > 0,
      valueAttributePreview: (valueAttr || "").slice(0, 4),
      autocomplete: el.getAttribute("autocomplete") || null,
    };
  }

  return {
    tag,
    type,
    id: el.id || null,
    name: el.getAttribute("name") || null,
    href: tag === "a" ? el.getAttribute("href") : null,
    textCandidates: [
      el.innerText || "",
      typeof el.value === "string" ? el.value : "",
      el.getAttribute("aria-label") || "",
      el.getAttribute("title") || "",
    ],
    hiddenAttribute: !!el.hidden,
    ariaHidden: el.getAttribute("aria-hidden"),
    disabledAttribute: el.hasAttribute("disabled"),
    ariaDisabled: el.getAttribute("aria-disabled"),
    className: (el.className || "").toString(),
    computed: {
      display: cs.display,
      visibility: cs.visibility,
      opacity: cs.opacity,
      pointerEvents: cs.pointerEvents,
    },
    bounds: {
      x: rect.x, y: rect.y, width: rect.width, height: rect.height,
      top: rect.top, right: rect.right, bottom: rect.bottom, left: rect.left,
    },
    viewport: { width: window.innerWidth, height: window.innerHeight },
    attributes: Array.from(el.attributes).map((a) => [a.name, a.value]),
    path,
    password,
  };
}
"""


@dataclass
class ElementFacts:
    """Raw per-element values read from the rendering surface."""
    tag: str
    type: Optional[str]
    id: Optional[str]
    name: Optional[str]
    href: Optional[str]
    text_candidates: List[str]
    hidden_attribute: bool
    aria_hidden: Optional[str]
    disabled_attribute: bool
    aria_disabled: Optional[str]
    class_name: str
    computed: Dict[str, str]
    bounds: Dict[str, float]
    viewport: Dict[str, float]
    attributes: List[List[str]]
    path: List[Dict[str, Any]]
    password: Optional[Dict[str, Any]] = None

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> 'ElementFacts':
        """Build facts from the survey script's result; raises KeyError/TypeError on malformed data."""
        return cls(
            tag=raw['tag'],
            type=raw.get('type'),
            id=raw.get('id'),
            name=raw.get('name'),
            href=raw.get('href'),
            text_candidates=list(raw.get('textCandidates') or []),
            hidden_attribute=bool(raw.get('hiddenAttribute')),
            aria_hidden=raw.get('ariaHidden'),
            disabled_attribute=bool(raw.get('disabledAttribute')),
            aria_disabled=raw.get('ariaDisabled'),
            class_name=raw.get('className') or '',
            computed=dict(raw['computed']),
            bounds=dict(raw['bounds']),
            viewport=dict(raw['viewport']),
            attributes=[list(pair) for pair in raw.get('attributes') or []],
            path=list(raw.get('path') or []),
            password=raw.get('password')
        )


@dataclass(frozen=True)
class Rule:
    """A named predicate; the label is recorded when the predicate holds."""
    label: str
    applies: Callable[[ElementFacts], bool]


def _opacity_is_zero(facts: ElementFacts) -> bool:
    try:
        return float(facts.computed.get('opacity', '1')) == 0
    except (TypeError, ValueError):
        return False


def _is_offscreen(facts: ElementFacts) -> bool:
    # Axis-aligned box against the viewport only; CSS transforms are not considered.
    b = facts.bounds
    v = facts.viewport
    return (
        b['width'] > 0 and b['height'] > 0 and
        (b['right'] < 0 or b['bottom'] < 0 or b['left'] > v['width'] or b['top'] > v['height'])
    )


HIDDEN_RULES = (
    Rule("hidden attribute", lambda f: f.hidden_attribute),
    Rule("aria-hidden=true", lambda f: f.aria_hidden == "true"),
    Rule("display:none", lambda f: f.computed.get('display') == "none"),
    Rule("visibility:hidden", lambda f: f.computed.get('visibility') == "hidden"),
    Rule("opacity:0", _opacity_is_zero),
    Rule("pointer-events:none", lambda f: f.computed.get('pointerEvents') == "none"),
    Rule("offscreen positioning", _is_offscreen),
)

DISABLED_RULES = (
    Rule("disabled attribute", lambda f: f.disabled_attribute),
    Rule("aria-disabled=true", lambda f: f.aria_disabled == "true"),
    Rule("class contains 'disabled'", lambda f: has_disabled_class(f.class_name)),
)


def apply_rules(rules: Sequence[Rule], facts: ElementFacts) -> List[str]:
    """Return the labels of every rule that holds, in table order."""
    return [rule.label for rule in rules if rule.applies(facts)]


def permission_hints(attributes: Sequence[Sequence[str]]) -> Dict[str, str]:
    """Collect attributes whose names look like role/permission markers, in attribute order."""
    hints = {}
    for name, value in attributes:
        if PERMISSION_HINT_PATTERN.search(name):
            hints[name] = value
    return hints


def label_candidates(facts: ElementFacts) -> List[str]:
    """
    Text candidates that are safe to persist.

    The value property only counts as text for button-like inputs; for every
    other field it holds data (passwords, tokens) and is left out.
    """
    candidates = list(facts.text_candidates)
    if len(candidates) > 1 and not (facts.tag == "input" and (facts.type or "").lower() in LABEL_VALUE_TYPES):
        candidates[1] = ""
    return candidates


def visible_text(candidates: Sequence[str]) -> str:
    """First non-empty of rendered text, value, aria-label and title, trimmed and truncated."""
    for candidate in candidates:
        if candidate:
            return candidate.strip()[:TEXT_LIMIT]
    return ""


def dom_path(segments: Sequence[Dict[str, Any]]) -> str:
    """Render ancestor segments (root-most first) as a short CSS-like path."""
    parts = []
    for segment in segments:
        id_part = f"#{segment['id']}" if segment.get('id') else ""
        parts.append(f"{segment['tag']}{id_part}:nth-child({segment['position']})")
    return " > ".join(parts)


def _js_round(value: float) -> int:
    # Math.round semantics (half rounds up), not banker's rounding
    return int((value + 0.5) // 1)


@dataclass
class ElementSnapshot:
    """Classification-ready view of one surveyed element."""
    tag: str
    type: Optional[str]
    id: Optional[str]
    name: Optional[str]
    href: Optional[str]
    text: str
    hidden_by: List[str]
    disabled_by: List[str]
    computed: Dict[str, str]
    rect: Dict[str, int]
    path: str
    perm_hints: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_facts(cls, facts: ElementFacts) -> 'ElementSnapshot':
        b = facts.bounds
        return cls(
            tag=facts.tag,
            type=facts.type,
            id=facts.id,
            name=facts.name,
            href=facts.href,
            text=visible_text(label_candidates(facts)),
            hidden_by=apply_rules(HIDDEN_RULES, facts),
            disabled_by=apply_rules(DISABLED_RULES, facts),
            computed={
                'display': facts.computed.get('display'),
                'visibility': facts.computed.get('visibility'),
                'opacity': facts.computed.get('opacity'),
                'pointer_events': facts.computed.get('pointerEvents')
            },
            rect={
                'x': _js_round(b['x']),
                'y': _js_round(b['y']),
                'w': _js_round(b['width']),
                'h': _js_round(b['height'])
            },
            path=dom_path(facts.path),
            perm_hints=permission_hints(facts.attributes)
        )

    @property
    def is_hidden(self) -> bool:
        return bool(self.hidden_by)

    @property
    def is_disabled(self) -> bool:
        return bool(self.disabled_by)

    def to_dict(self) -> Dict[str, Any]:
        """Convert snapshot to dictionary for serialization."""
        return {
            'tag': self.tag,
            'type': self.type,
            'id': self.id,
            'name': self.name,
            'href': self.href,
            'text': self.text,
            'hidden_by': list(self.hidden_by),
            'disabled_by': list(self.disabled_by),
            'computed': dict(self.computed),
            'rect': dict(self.rect),
            'path': self.path,
            'perm_hints': dict(self.perm_hints)
        }


@dataclass
class SurveyResult:
    """Outcome of surveying one candidate: a snapshot, or a degraded marker with the error."""
    index: int
    snapshot: Optional[ElementSnapshot] = None
    markup: str = ""
    password_probe: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.snapshot is not None

    @classmethod
    def degraded(cls, index: int, error: str) -> 'SurveyResult':
        return cls(index=index, error=error)


@dataclass
class SurveyOutcome:
    """Everything the survey pass produced, in document order."""
    selector: str
    elements: List[ElementRef]
    results: List[SurveyResult]
    total_matched: int

    @property
    def degraded_count(self) -> int:
        return len([r for r in self.results if not r.ok])


class DOMSurvey:
    """Enumerates candidate elements and classifies each one's concealment signals."""

    def __init__(self, scope: Scope, limit: int):
        """
        Initialize the survey.

        Args:
            scope: Candidate selector set
            limit: Maximum number of elements inspected
        """
        self.scope = scope
        self.limit = limit
        self.selector = SELECTORS_BY_SCOPE[scope]

    async def run(self, surface: RenderingSurface) -> SurveyOutcome:
        """
        Survey every capped candidate on the page, in document order.

        Args:
            surface: Rendering surface the page is loaded on

        Returns:
            SurveyOutcome with one result per capped candidate
        """
        matched = await surface.query_all(self.selector)
        capped = list(matched[:self.limit])

        logger.info(f"Surveying {len(capped)} of {len(matched)} candidates (scope {self.scope.value})")

        results = []
        for index, element in enumerate(capped):
            results.append(await self.inspect(index, element))

        outcome = SurveyOutcome(
            selector=self.selector,
            elements=capped,
            results=results,
            total_matched=len(matched)
        )

        logger.info(f"Survey completed: {len(results)} inspected, {outcome.degraded_count} degraded")

        return outcome

    async def inspect(self, index: int, element: ElementRef) -> SurveyResult:
        """
        Survey one element; failures degrade this element only.

        Args:
            index: Position in the capped candidate sequence
            element: Handle to the element

        Returns:
            SurveyResult for the element
        """
        try:
            raw = await element.evaluate(SURVEY_SCRIPT, PATH_DEPTH)
            facts = ElementFacts.from_raw(raw)
            snapshot = ElementSnapshot.from_facts(facts)
            markup = await element.outer_html()
        except (ElementEvaluationError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Element #{index} evaluation failed: {e}")
            return SurveyResult.degraded(index, str(e))

        return SurveyResult(
            index=index,
            snapshot=snapshot,
            markup=markup or "",
            password_probe=facts.password
        )
