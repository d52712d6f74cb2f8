import logging
from typing import List, Optional, Sequence
from dataclasses import dataclass

from .config import FocusTarget
from .classifier import Findings
from .errors import ElementEvaluationError
from .utils.browser import ElementRef

logger = logging.getLogger(__name__)

HIGHLIGHT_SCRIPT = """
(el, label) => {
  el.scrollIntoView({ block: "center", inline: "center", behavior: "instant" });

  const old = document.querySelector("[data-clientsideeye-tag='1']");
  if (old) old.remove();

  el.setAttribute("data-clientsideeye-highlight", "1");
  el.style.setProperty("outline", "3px solid #ff3b30", "important");
  el.style.setProperty("outline-offset", "3px", "important");
  el.style.setProperty("box-shadow", "0 0 0 6px rgba(255,59,48,0.25)", "important");

  const tag = document.createElement("div");
  tag.textContent = `ClientSideEye: ${label}`;
  Object.assign(tag.style, {
    position: "absolute",
    zIndex: "2147483647",
    background: "rgba(255,59,48,0.95)",
    color: "white",
    fontFamily: "monospace",
    fontSize: "12px",
    padding: "4px 6px",
    borderRadius: "6px",
  });
  const rect = el.getBoundingClientRect();
  tag.style.left = `${Math.max(8, rect.left + window.scrollX)}px`;
  tag.style.top = `${Math.max(8, rect.top + window.scrollY - 28)}px`;
  tag.setAttribute("data-clientsideeye-tag", "1");
  document.body.appendChild(tag);
}
"""


@dataclass
class FocusResult:
    """The finding that was highlighted, with a best-effort selector for DevTools."""
    target: FocusTarget
    index: int
    label: str
    selector: str
    path: Optional[str]

    def describe(self) -> List[str]:
        return [
            "",
            "--- Focused finding ---",
            f"Type: {self.target.value}",
            f"Index: #{self.index}",
            f"Selector (best-effort): {self.selector}",
            f"DOM path: {self.path or '-'}",
            "Tip: open the DevTools element picker and click the red-outlined element.",
        ]


def best_effort_selector(tag: str, element_id: Optional[str], name: Optional[str], path: Optional[str]) -> str:
    if element_id:
        return f"#{element_id}"
    if name:
        return f'{tag}[name="{name}"]'
    if path:
        return path
    return "(use element picker)"


async def focus_finding(target: FocusTarget,
                        findings: Findings,
                        elements: Sequence[ElementRef]) -> Optional[FocusResult]:
    """
    Scroll to and outline the first finding of the requested kind.

    Args:
        target: Which bucket to focus
        findings: Classified findings
        elements: Handles captured during the survey

    Returns:
        FocusResult, or None when there is nothing to focus
    """
    if target is FocusTarget.PASSWORD and findings.password_masking:
        item = findings.password_masking[0]
        label = f"password masking issue (#{item.index})"
    elif target is FocusTarget.HIDDEN and findings.hidden_or_disabled:
        item = findings.hidden_or_disabled[0]
        label = f"hidden/disabled control (#{item.index})"
    else:
        return None

    if not 0 <= item.index < len(elements):
        return None

    try:
        await elements[item.index].evaluate(HIGHLIGHT_SCRIPT, label)
    except ElementEvaluationError as e:
        # Highlighting is cosmetic; the selector is still useful
        logger.warning(f"Highlight failed for #{item.index}: {e}")

    snapshot = item.snapshot
    return FocusResult(
        target=target,
        index=item.index,
        label=label,
        selector=best_effort_selector(snapshot.tag, snapshot.id, snapshot.name, snapshot.path),
        path=snapshot.path
    )
