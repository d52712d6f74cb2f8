"""Tests for the mutation engine: modes, change logs, idempotence and resolution."""

import pytest

from clientsideeye.classifier import classify
from clientsideeye.config import Mode, Scope
from clientsideeye.mutator import LiveState, MutationEngine, plan_reversals
from clientsideeye.survey import DOMSurvey

from fakes import FakeElement, FakeSurface


async def _survey(surface):
    outcome = await DOMSurvey(Scope.ALL, limit=250).run(surface)
    return outcome, classify(outcome.results)


async def _mutate(mode, surface):
    outcome, findings = await _survey(surface)
    engine = MutationEngine(mode)
    result = await engine.run(surface, findings.hidden_or_disabled, outcome.elements)
    return result, findings, outcome


def _state(**overrides) -> LiveState:
    raw = {'display': 'block', 'visibility': 'visible', 'opacity': '1', 'pointerEvents': 'auto',
           'hidden': False, 'ariaHidden': None, 'disabled': False, 'ariaDisabled': None, 'className': ''}
    raw.update(overrides)
    return LiveState.from_raw(raw)


def test_plan_follows_fixed_unhide_order():
    state = _state(display='none', visibility='hidden', opacity='0', pointerEvents='none',
                   hidden=True, ariaHidden='true', disabled=True)
    planned = [r.describe for r in plan_reversals(state, Mode.SOFT_UNHIDE)]
    assert planned == [
        "style.display=revert",
        "style.visibility=visible",
        "style.opacity=1",
        "style.pointer-events=auto",
        "removed hidden property",
        "aria-hidden=false",
    ]


def test_aggressive_adds_enable_reversals_after_unhide():
    state = _state(visibility='hidden', disabled=True, ariaDisabled='true', className='btn disabled')
    planned = [r.describe for r in plan_reversals(state, Mode.AGGRESSIVE)]
    assert planned == [
        "style.visibility=visible",
        "removed disabled attr",
        "aria-disabled=false",
        "removed 'disabled' class token",
    ]


def test_report_mode_plans_nothing():
    state = _state(display='none', disabled=True)
    assert plan_reversals(state, Mode.REPORT) == []


def test_hyphenated_disabled_class_is_not_a_change():
    state = _state(className='btn-disabled')
    assert plan_reversals(state, Mode.AGGRESSIVE) == []


@pytest.mark.asyncio
async def test_soft_unhide_display_none_button():
    """A display:none button yields a record with a display change and a visible after-state."""
    surface = FakeSurface([
        FakeElement('button', {'id': 'purge', 'style': 'display:none'}, text='Purge',
                    style={'display': 'none'}),
    ])
    result, _, _ = await _mutate(Mode.SOFT_UNHIDE, surface)

    assert len(result.records) == 1
    record = result.records[0]
    assert record.index == 0
    assert record.id == 'purge'
    assert any(change.startswith('style.display=') for change in record.applied)
    assert record.after['display'] != 'none'
    assert result.summary.candidates_before == 1
    assert result.summary.modified_count == 1
    assert surface.settled == [500]


@pytest.mark.asyncio
async def test_aggressive_strips_only_disabled_class_token():
    element = FakeElement('button', {'class': 'btn disabled primary'}, text='Approve')
    surface = FakeSurface([element])
    result, _, _ = await _mutate(Mode.AGGRESSIVE, surface)

    assert element.attrs['class'] == 'btn primary'
    assert result.records[0].applied == ["removed 'disabled' class token"]


@pytest.mark.asyncio
async def test_soft_unhide_leaves_disabled_controls_alone():
    element = FakeElement('button', {'disabled': '', 'aria-disabled': 'true'}, text='Approve')
    surface = FakeSurface([element])
    result, findings, _ = await _mutate(Mode.SOFT_UNHIDE, surface)

    assert len(findings.hidden_or_disabled) == 1
    assert result.records == []
    assert result.summary.candidates_before == 1
    assert result.summary.modified_count == 0
    assert 'disabled' in element.attrs


@pytest.mark.asyncio
async def test_aggressive_reenables_and_records_after_state():
    element = FakeElement('button', {'disabled': '', 'aria-disabled': 'true', 'hidden': ''})
    surface = FakeSurface([element])
    result, _, _ = await _mutate(Mode.AGGRESSIVE, surface)

    record = result.records[0]
    assert record.applied == [
        "style.display=revert",
        "removed hidden property",
        "removed disabled attr",
        "aria-disabled=false",
    ]
    assert record.after == {
        'display': 'inline-block',
        'visibility': 'visible',
        'opacity': '1',
        'pointer_events': 'auto',
        'disabled': False,
        'aria_disabled': 'false',
        'aria_hidden': None,
        'hidden': False,
    }


@pytest.mark.asyncio
async def test_second_pass_is_a_no_op(sample_page):
    surface = FakeSurface(sample_page)
    first, findings, outcome = await _mutate(Mode.AGGRESSIVE, surface)
    assert len(first.records) == 3

    second = await MutationEngine(Mode.AGGRESSIVE).run(surface, findings.hidden_or_disabled, outcome.elements)
    assert second.records == []
    assert second.summary.candidates_before == 3
    assert second.summary.modified_count == 0


@pytest.mark.asyncio
async def test_report_mode_never_evaluates_mutation_scripts(sample_page):
    surface = FakeSurface(sample_page)
    result, _, _ = await _mutate(Mode.REPORT, surface)

    assert result.records == []
    assert result.summary is None
    assert surface.id_lookups == []
    assert surface.settled == []
    for element in sample_page:
        assert 'read_state' not in element.calls
        assert 'apply' not in element.calls


@pytest.mark.asyncio
async def test_resolution_prefers_id_then_falls_back_to_captured_handle():
    element = FakeElement('button', {'id': 'gone', 'hidden': ''})
    surface = FakeSurface([element])
    surface.detached_ids.add('gone')

    result, _, _ = await _mutate(Mode.SOFT_UNHIDE, surface)

    assert surface.id_lookups == ['gone']
    assert len(result.records) == 1


@pytest.mark.asyncio
async def test_unresolvable_candidate_is_skipped():
    broken = FakeElement('button', {'hidden': ''}, text='stale', fail_on=['read_state'])
    healthy = FakeElement('button', {'aria-hidden': 'true'}, text='ok')
    surface = FakeSurface([broken, healthy])

    result, _, _ = await _mutate(Mode.SOFT_UNHIDE, surface)

    assert [r.index for r in result.records] == [1]
    assert result.records[0].applied == ["aria-hidden=false"]
    assert result.summary.candidates_before == 2
    assert result.summary.modified_count == 1


@pytest.mark.asyncio
async def test_candidate_outside_captured_handles_is_skipped(sample_page):
    surface = FakeSurface(sample_page)
    _, findings = await _survey(surface)
    result = await MutationEngine(Mode.SOFT_UNHIDE).run(surface, findings.hidden_or_disabled, [])

    # Only candidates with an id can still be found
    assert sorted(r.id for r in result.records) == ['delete-user', 'export']
