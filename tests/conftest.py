"""Shared test fixtures for ClientSideEye tests."""

import pytest

from clientsideeye.config import load_config

from fakes import FakeElement, FakeSurface


@pytest.fixture
def make_config(tmp_path):
    """Build an AuditConfig with an isolated environment and output path."""
    def _make(url="https://app.example.test/admin", environ=None, **kwargs):
        kwargs.setdefault('out', str(tmp_path / "report.json"))
        kwargs.setdefault('wait_ms', 0)
        return load_config(url, environ=environ or {}, **kwargs)
    return _make


@pytest.fixture
def sample_page():
    """A small page mixing visible, hidden, disabled, password and role-marked controls."""
    return [
        FakeElement('a', {'href': '/home'}, text='Home'),
        FakeElement('button', {'id': 'delete-user', 'style': 'display:none'}, text='Delete user',
                    style={'display': 'none'}),
        FakeElement('button', {'class': 'btn disabled primary', 'disabled': ''}, text='Approve'),
        FakeElement('input', {'type': 'password', 'name': 'api_password', 'value': 'secret123'}),
        FakeElement('button', {'id': 'export', 'data-role': 'admin', 'aria-hidden': 'true'}, text='Export'),
        FakeElement('input', {'type': 'password', 'name': 'new_password'}),
        FakeElement('div', {'class': 'panel'}, text='not a candidate'),
    ]


@pytest.fixture
def surface(sample_page):
    return FakeSurface(sample_page, loaded_url="https://app.example.test/admin?tab=users")
