import logging
from typing import Dict, List, Any, Optional, Sequence, Callable
from dataclasses import dataclass, field

from .config import Mode
from .classifier import HiddenOrDisabledFinding
from .errors import ElementEvaluationError, MutationResolutionError
from .utils.browser import ElementRef, RenderingSurface
from .utils.markup import has_disabled_class, strip_disabled_class

logger = logging.getLogger(__name__)

SETTLE_MS = 500

READ_STATE_SCRIPT = """
(el) => {
  const cs = window.getComputedStyle(el);
  return {
    display: cs.display,
    visibility: cs.visibility,
    opacity: cs.opacity,
    pointerEvents: cs.pointerEvents,
    hidden: !!el.hidden,
    ariaHidden: el.getAttribute("aria-hidden"),
    disabled: el.hasAttribute("disabled"),
    ariaDisabled: el.getAttribute("aria-disabled"),
    className: (el.className || "").toString(),
  };
}
"""

APPLY_SCRIPT = """
(el, actions) => {
  for (const action of actions) {
    if (action.op === "style") {
      el.style.setProperty(action.name, action.value, "important");
    } else if (action.op === "unhide") {
      el.hidden = false;
    } else if (action.op === "set-attr") {
      el.setAttribute(action.name, action.value);
    } else if (action.op === "remove-attr") {
      el.removeAttribute(action.name);
    } else if (action.op === "class") {
      el.className = action.value;
    }
  }
  const cs = window.getComputedStyle(el);
  return {
    display: cs.display,
    visibility: cs.visibility,
    opacity: cs.opacity,
    pointerEvents: cs.pointerEvents,
    disabled: el.hasAttribute("disabled"),
    ariaDisabled: el.getAttribute("aria-disabled"),
    ariaHidden: el.getAttribute("aria-hidden"),
    hidden: !!el.hidden,
  };
}
"""


@dataclass
class LiveState:
    """Current concealment/disablement state of an element, read just before mutating."""
    display: Optional[str]
    visibility: Optional[str]
    opacity: Optional[str]
    pointer_events: Optional[str]
    hidden: bool
    aria_hidden: Optional[str]
    disabled: bool
    aria_disabled: Optional[str]
    class_name: str

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> 'LiveState':
        return cls(
            display=raw.get('display'),
            visibility=raw.get('visibility'),
            opacity=raw.get('opacity'),
            pointer_events=raw.get('pointerEvents'),
            hidden=bool(raw.get('hidden')),
            aria_hidden=raw.get('ariaHidden'),
            disabled=bool(raw.get('disabled')),
            aria_disabled=raw.get('ariaDisabled'),
            class_name=raw.get('className') or ''
        )

    @property
    def opacity_is_zero(self) -> bool:
        try:
            return float(self.opacity) == 0
        except (TypeError, ValueError):
            return False


@dataclass(frozen=True)
class Reversal:
    """A concealment reversal: when the state matches, emit an action and a change label."""
    matches: Callable[[LiveState], bool]
    build: Callable[[LiveState], Dict[str, Any]]
    describe: str


def _style_rule(name: str, value: str, matches: Callable[[LiveState], bool]) -> Reversal:
    return Reversal(
        matches=matches,
        build=lambda s: {'op': 'style', 'name': name, 'value': value},
        describe=f"style.{name}={value}"
    )


UNHIDE_REVERSALS = (
    _style_rule("display", "revert", lambda s: s.display == "none"),
    _style_rule("visibility", "visible", lambda s: s.visibility == "hidden"),
    _style_rule("opacity", "1", lambda s: s.opacity_is_zero),
    _style_rule("pointer-events", "auto", lambda s: s.pointer_events == "none"),
    Reversal(
        matches=lambda s: s.hidden,
        build=lambda s: {'op': 'unhide'},
        describe="removed hidden property"
    ),
    Reversal(
        matches=lambda s: s.aria_hidden == "true",
        build=lambda s: {'op': 'set-attr', 'name': 'aria-hidden', 'value': 'false'},
        describe="aria-hidden=false"
    ),
)

ENABLE_REVERSALS = (
    Reversal(
        matches=lambda s: s.disabled,
        build=lambda s: {'op': 'remove-attr', 'name': 'disabled'},
        describe="removed disabled attr"
    ),
    Reversal(
        matches=lambda s: s.aria_disabled == "true",
        build=lambda s: {'op': 'set-attr', 'name': 'aria-disabled', 'value': 'false'},
        describe="aria-disabled=false"
    ),
    Reversal(
        matches=lambda s: (
            has_disabled_class(s.class_name) and
            strip_disabled_class(s.class_name) != " ".join(s.class_name.split())
        ),
        build=lambda s: {'op': 'class', 'value': strip_disabled_class(s.class_name)},
        describe="removed 'disabled' class token"
    ),
)


def plan_reversals(state: LiveState, mode: Mode) -> List[Reversal]:
    """
    Decide which reversals apply to an element in the given mode.

    Args:
        state: Live state of the element
        mode: Mutation mode for the run

    Returns:
        Reversals in their fixed order (empty in report mode)
    """
    if not mode.mutates_dom:
        return []

    rules = list(UNHIDE_REVERSALS)
    if mode.reverses_disabled:
        rules.extend(ENABLE_REVERSALS)

    return [rule for rule in rules if rule.matches(state)]


@dataclass
class MutationRecord:
    """What was changed on one element and how it looked afterwards."""
    index: int
    id: Optional[str]
    name: Optional[str]
    tag: str
    type: Optional[str]
    text: str
    applied: List[str]
    after: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to dictionary for serialization."""
        return {
            'index': self.index,
            'id': self.id,
            'name': self.name,
            'tag': self.tag,
            'type': self.type,
            'text': self.text,
            'applied': list(self.applied),
            'after': dict(self.after)
        }


@dataclass
class UnhideSummary:
    candidates_before: int
    modified_count: int

    def to_dict(self) -> Dict[str, int]:
        return {'candidates_before': self.candidates_before, 'modified_count': self.modified_count}


@dataclass
class MutationOutcome:
    """Records produced by a mutation pass, plus the summary (absent in report mode)."""
    records: List[MutationRecord] = field(default_factory=list)
    summary: Optional[UnhideSummary] = None


def _after_state(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'display': raw.get('display'),
        'visibility': raw.get('visibility'),
        'opacity': raw.get('opacity'),
        'pointer_events': raw.get('pointerEvents'),
        'disabled': bool(raw.get('disabled')),
        'aria_disabled': raw.get('ariaDisabled'),
        'aria_hidden': raw.get('ariaHidden'),
        'hidden': bool(raw.get('hidden'))
    }


class MutationEngine:
    """Reverses client-side concealment (and, in aggressive mode, disablement) on findings."""

    def __init__(self, mode: Mode, settle_ms: int = SETTLE_MS):
        """
        Initialize the mutation engine.

        Args:
            mode: Mutation mode, fixed for the run
            settle_ms: Delay after the pass so the page can react to the changes
        """
        self.mode = mode
        self.settle_ms = settle_ms

    async def run(self,
                  surface: RenderingSurface,
                  candidates: Sequence[HiddenOrDisabledFinding],
                  elements: Sequence[ElementRef]) -> MutationOutcome:
        """
        Apply reversals to every hidden/disabled finding, in bucket order.

        Args:
            surface: Rendering surface the page is loaded on
            candidates: Hidden/disabled findings from classification
            elements: Handles captured during the survey, indexed by finding index

        Returns:
            MutationOutcome (records only for elements that actually changed)
        """
        if not self.mode.mutates_dom:
            logger.info("Report mode: no DOM mutation applied")
            return MutationOutcome()

        records = []
        for finding in candidates:
            try:
                element = await self._resolve(surface, finding, elements)
                record = await self.mutate(element, finding)
            except (MutationResolutionError, ElementEvaluationError) as e:
                logger.debug(f"Mutation candidate #{finding.index} skipped: {e}")
                continue

            if record is not None:
                records.append(record)

        await surface.settle(self.settle_ms)

        summary = UnhideSummary(candidates_before=len(candidates), modified_count=len(records))
        logger.info(f"Mutation pass completed: {summary.modified_count} of {summary.candidates_before} candidates modified")

        return MutationOutcome(records=records, summary=summary)

    async def _resolve(self,
                       surface: RenderingSurface,
                       finding: HiddenOrDisabledFinding,
                       elements: Sequence[ElementRef]) -> ElementRef:
        """Re-find the live element by id, falling back to the handle captured at its index."""
        element_id = finding.snapshot.id
        if element_id:
            try:
                element = await surface.find_by_id(element_id)
            except ElementEvaluationError:
                element = None
            if element is not None:
                return element

        if 0 <= finding.index < len(elements):
            return elements[finding.index]

        raise MutationResolutionError(f"Cannot resolve element #{finding.index}")

    async def mutate(self, element: ElementRef, finding: HiddenOrDisabledFinding) -> Optional[MutationRecord]:
        """
        Reverse concealment on one element.

        Args:
            element: Live element handle
            finding: The finding this element came from

        Returns:
            MutationRecord, or None when nothing needed changing
        """
        state = LiveState.from_raw(await element.evaluate(READ_STATE_SCRIPT))
        reversals = plan_reversals(state, self.mode)
        if not reversals:
            return None

        actions = [reversal.build(state) for reversal in reversals]
        after = await element.evaluate(APPLY_SCRIPT, actions)

        snapshot = finding.snapshot
        return MutationRecord(
            index=finding.index,
            id=snapshot.id,
            name=snapshot.name,
            tag=snapshot.tag,
            type=snapshot.type,
            text=snapshot.text,
            applied=[reversal.describe for reversal in reversals],
            after=_after_state(after or {})
        )
