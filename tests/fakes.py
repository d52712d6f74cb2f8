"""In-memory rendering surface used in place of a real browser."""

import re
from typing import Any, Callable, Dict, List, Optional

from clientsideeye.errors import ElementEvaluationError, NavigationError
from clientsideeye.inspector import HIGHLIGHT_SCRIPT
from clientsideeye.mutator import APPLY_SCRIPT, READ_STATE_SCRIPT
from clientsideeye.survey import SURVEY_SCRIPT
from clientsideeye.utils.browser import RequestEvent

SIMPLE_SELECTOR = re.compile(r"^(\w*)(?:\[([\w-]+)(?:='([^']*)')?\])?$")

DEFAULT_STYLE = {
    'display': 'inline-block',
    'visibility': 'visible',
    'opacity': '1',
    'pointer-events': 'auto',
}


class FakeElement:
    """A DOM element with attributes, author styles, and inline !important overrides."""

    def __init__(self, tag: str, attrs: Optional[Dict[str, str]] = None, text: str = "",
                 value: Optional[str] = None, style: Optional[Dict[str, str]] = None,
                 rect: Optional[Dict[str, float]] = None, ancestors: Optional[List[Dict[str, Any]]] = None,
                 position: int = 1, fail_on: Optional[List[str]] = None):
        self.tag = tag
        self.attrs = dict(attrs or {})
        self.text = text
        # Browsers reflect the value attribute into the live value property
        self.value = value if value is not None else self.attrs.get('value')
        self.style = dict(style or {})
        self.overrides: Dict[str, str] = {}
        self.rect = rect or {'x': 10.0, 'y': 20.0, 'width': 80.0, 'height': 24.0}
        self.ancestors = ancestors or [{'tag': 'html', 'id': None, 'position': 1},
                                       {'tag': 'body', 'id': None, 'position': 2}]
        self.position = position
        self.fail_on = fail_on or []
        self.calls: List[str] = []
        self.highlighted: Optional[str] = None

    def computed(self, prop: str) -> str:
        if prop in self.overrides:
            value = self.overrides[prop]
            if value == 'revert':
                return DEFAULT_STYLE[prop]
            return value
        if prop == 'display' and 'hidden' in self.attrs:
            return 'none'
        return self.style.get(prop, DEFAULT_STYLE[prop])

    def matches(self, selector: str) -> bool:
        for part in selector.split(','):
            m = SIMPLE_SELECTOR.match(part.strip())
            if not m:
                continue
            tag, attr, value = m.groups()
            if tag and tag != self.tag:
                continue
            if attr and attr not in self.attrs:
                continue
            if attr and value is not None and self.attrs.get(attr) != value:
                continue
            return True
        return False

    def _script_name(self, script: str) -> str:
        names = {
            SURVEY_SCRIPT: 'survey',
            READ_STATE_SCRIPT: 'read_state',
            APPLY_SCRIPT: 'apply',
            HIGHLIGHT_SCRIPT: 'highlight',
        }
        return names.get(script, 'other')

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        name = self._script_name(script)
        self.calls.append(name)
        if name in self.fail_on:
            raise ElementEvaluationError(f"{name} failed: element detached")

        if name == 'survey':
            return self._survey_facts(arg)
        if name == 'read_state':
            return self._state()
        if name == 'apply':
            self._apply(arg)
            return self._after()
        if name == 'highlight':
            self.highlighted = arg
            return None
        raise AssertionError(f"Unexpected script: {script[:40]}")

    async def outer_html(self) -> str:
        self.calls.append('outer_html')
        if 'outer_html' in self.fail_on:
            raise ElementEvaluationError("outer_html failed")
        attrs = "".join(f' {k}="{v}"' for k, v in self.attrs.items())
        return f"<{self.tag}{attrs}>{self.text}</{self.tag}>"

    def _input_type(self) -> Optional[str]:
        return self.attrs.get('type', 'text') if self.tag == 'input' else None

    def _survey_facts(self, depth: int) -> Dict[str, Any]:
        r = self.rect
        input_type = self._input_type()
        password = None
        if self.tag == 'input' and (input_type or '').lower() == 'password':
            val = self.value or ''
            value_attr = self.attrs.get('value')
            password = {
                'hasValueInProperty': len(val) > 0,
                'valuePropertyPreview': val[:4],
                'hasValueInAttribute': value_attr is not None and len(value_attr) > 0,
                'valueAttributePreview': (value_attr or '')[:4],
                'autocomplete': self.attrs.get('autocomplete'),
            }
        own = {'tag': self.tag, 'id': self.attrs.get('id'), 'position': self.position}
        path = (self.ancestors + [own])[-depth:]
        return {
            'tag': self.tag,
            'type': input_type,
            'id': self.attrs.get('id'),
            'name': self.attrs.get('name'),
            'href': self.attrs.get('href') if self.tag == 'a' else None,
            'textCandidates': [
                self.text,
                self.value or '',
                self.attrs.get('aria-label', ''),
                self.attrs.get('title', ''),
            ],
            'hiddenAttribute': 'hidden' in self.attrs,
            'ariaHidden': self.attrs.get('aria-hidden'),
            'disabledAttribute': 'disabled' in self.attrs,
            'ariaDisabled': self.attrs.get('aria-disabled'),
            'className': self.attrs.get('class', ''),
            'computed': {
                'display': self.computed('display'),
                'visibility': self.computed('visibility'),
                'opacity': self.computed('opacity'),
                'pointerEvents': self.computed('pointer-events'),
            },
            'bounds': {
                'x': r['x'], 'y': r['y'], 'width': r['width'], 'height': r['height'],
                'top': r['y'], 'left': r['x'],
                'right': r['x'] + r['width'], 'bottom': r['y'] + r['height'],
            },
            'viewport': {'width': 1280, 'height': 800},
            'attributes': [[k, v] for k, v in self.attrs.items()],
            'path': path,
            'password': password,
        }

    def _state(self) -> Dict[str, Any]:
        return {
            'display': self.computed('display'),
            'visibility': self.computed('visibility'),
            'opacity': self.computed('opacity'),
            'pointerEvents': self.computed('pointer-events'),
            'hidden': 'hidden' in self.attrs,
            'ariaHidden': self.attrs.get('aria-hidden'),
            'disabled': 'disabled' in self.attrs,
            'ariaDisabled': self.attrs.get('aria-disabled'),
            'className': self.attrs.get('class', ''),
        }

    def _apply(self, actions: List[Dict[str, Any]]):
        for action in actions:
            op = action['op']
            if op == 'style':
                self.overrides[action['name']] = action['value']
            elif op == 'unhide':
                self.attrs.pop('hidden', None)
            elif op == 'set-attr':
                self.attrs[action['name']] = action['value']
            elif op == 'remove-attr':
                self.attrs.pop(action['name'], None)
            elif op == 'class':
                self.attrs['class'] = action['value']

    def _after(self) -> Dict[str, Any]:
        state = self._state()
        return {
            'display': state['display'],
            'visibility': state['visibility'],
            'opacity': state['opacity'],
            'pointerEvents': state['pointerEvents'],
            'disabled': state['disabled'],
            'ariaDisabled': state['ariaDisabled'],
            'ariaHidden': state['ariaHidden'],
            'hidden': state['hidden'],
        }


class FakeSurface:
    """RenderingSurface over a fixed list of FakeElements in document order."""

    def __init__(self, elements: List[FakeElement], loaded_url: Optional[str] = None,
                 requests: Optional[List[RequestEvent]] = None, fail_navigation: bool = False):
        self.elements = elements
        self.loaded_url = loaded_url
        self.requests = requests or []
        self.fail_navigation = fail_navigation
        self.listeners: List[Callable[[RequestEvent], None]] = []
        self.id_lookups: List[str] = []
        self.detached_ids: set = set()
        self.settled: List[int] = []
        self.entered = False
        self.closed = False

    async def __aenter__(self):
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.closed = True

    def on_request(self, callback: Callable[[RequestEvent], None]) -> None:
        self.listeners.append(callback)

    async def navigate(self, url: str, wait_ms: int) -> str:
        if self.fail_navigation:
            raise NavigationError(f"Failed to load {url}")
        for event in self.requests:
            for callback in self.listeners:
                callback(event)
        return self.loaded_url or url

    async def query_all(self, selector: str) -> List[FakeElement]:
        return [el for el in self.elements if el.matches(selector)]

    async def find_by_id(self, element_id: str) -> Optional[FakeElement]:
        self.id_lookups.append(element_id)
        if element_id in self.detached_ids:
            return None
        for el in self.elements:
            if el.attrs.get('id') == element_id:
                return el
        return None

    async def settle(self, ms: int) -> None:
        self.settled.append(ms)

    async def wait_until_closed(self) -> None:
        return None
