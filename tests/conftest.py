"""
Shared pytest fixtures for the Waltz report grid test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - fixed_column: factory for FixedColumnDefinition value objects
    - persist: add + commit helper
"""

import pytest

from waltz import create_app
from waltz.models import db as _db
from waltz.services.report_grid_types import AdditionalColumnOptions, FixedColumnDefinition


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def fixed_column():
    """Build a FixedColumnDefinition; position defaults to the grid column id."""

    def _make(grid_column_id, kind, entity_id=None, *, position=None, option="NONE", **kw):
        return FixedColumnDefinition(
            grid_column_id=grid_column_id,
            position=grid_column_id if position is None else position,
            column_entity_kind=kind,
            column_entity_id=entity_id,
            additional_column_options=AdditionalColumnOptions(option),
            **kw,
        )

    return _make


@pytest.fixture()
def persist():
    """Add rows and commit."""

    def _persist(*rows):
        _db.session.add_all(rows)
        _db.session.commit()
        return rows

    return _persist
