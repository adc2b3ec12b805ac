"""Shared test fixtures."""
from contextlib import ExitStack
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import patch, MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from leadflow.database import Base

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

# Modules that bind get_session at import time.
SESSION_TARGETS = [
    'leadflow.database.get_session',
    'leadflow.services.audit.get_session',
    'leadflow.services.importer.get_session',
    'leadflow.services.notifications.get_session',
    'leadflow.services.reports.get_session',
    'leadflow.services.transitions.get_session',
]


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created."""
    engine = create_engine('sqlite:///:memory:')
    import leadflow.models.lead
    import leadflow.models.pipeline
    import leadflow.models.pipeline_entry
    import leadflow.models.appointment
    import leadflow.models.notification
    import leadflow.models.audit_log
    import leadflow.models.import_log
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """SQLAlchemy session bound to in-memory SQLite. Rolls back after each test."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def patch_get_session(db_session):
    """Route all get_session() calls to the test session.

    We disable close() so that services and route handlers calling
    session.close() in their finally blocks don't invalidate the shared
    test session.
    """
    _real_close = db_session.close
    db_session.close = lambda: None
    with ExitStack() as stack:
        for target in SESSION_TARGETS:
            stack.enter_context(patch(target, return_value=db_session))
        yield db_session
    db_session.close = _real_close


@pytest.fixture
def mock_redis():
    """Mock Redis client. Returns a MagicMock with common Redis methods."""
    mock = MagicMock()
    mock.get.return_value = None
    mock.setex.return_value = True
    mock.zadd.return_value = 1
    mock.zrevrange.return_value = []
    with patch('leadflow.extensions.redis_client', mock), \
         patch('leadflow.models.import_job.r', mock):
        yield mock


@pytest.fixture
def app():
    """Flask test app (notification scheduler is never started in testing)."""
    from leadflow import create_app
    app = create_app(testing=True)
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


# ── Factories ────────────────────────────────────────────────────────────────

@pytest.fixture
def make_lead(db_session):
    """Factory fixture — inserts a Lead and commits."""
    from leadflow.models.lead import Lead

    def _make(**overrides):
        defaults = dict(name='Test Lead', whatsapp='+5511999990000', email='', origin='Instagram')
        defaults.update(overrides)
        lead = Lead(**defaults)
        db_session.add(lead)
        db_session.commit()
        return lead
    return _make


@pytest.fixture
def make_pipeline(db_session):
    """
    Factory fixture — inserts a Pipeline with stages (and checklist items).

    stages: list of dicts with Stage columns plus an optional 'checklist' list
    of {title, required}. Returns (pipeline, [stages in order]).
    """
    from leadflow.models.pipeline import ChecklistItem, Pipeline, Stage

    def _make(name='Sales', stages=None, **overrides):
        pipeline = Pipeline(name=name, **overrides)
        db_session.add(pipeline)
        db_session.flush()

        created = []
        stage_defs = stages if stages is not None else [
            {'name': 'Contact', 'sla_days': 3},
            {'name': 'Proposal', 'sla_days': 5},
            {'name': 'Closed', 'sla_days': None, 'is_final': True},
        ]
        for order, stage_def in enumerate(stage_defs, start=1):
            stage_def = dict(stage_def)
            checklist = stage_def.pop('checklist', [])
            stage_def.setdefault('order', order)
            stage = Stage(pipeline_id=pipeline.id, **stage_def)
            db_session.add(stage)
            db_session.flush()
            for i, item in enumerate(checklist):
                db_session.add(ChecklistItem(stage_id=stage.id, order=i, **item))
            created.append(stage)

        db_session.commit()
        return pipeline, created
    return _make


@pytest.fixture
def make_entry(db_session):
    """Factory fixture — inserts a PipelineEntry that entered its stage days_ago before NOW."""
    from leadflow.models.pipeline_entry import PipelineEntry

    def _make(lead, stage, days_ago=0, status='Active', **overrides):
        entry = PipelineEntry(
            lead_id=lead.id,
            pipeline_id=stage.pipeline_id,
            current_stage_id=stage.id,
            status=status,
            stage_entered_at=NOW - timedelta(days=days_ago),
            **overrides,
        )
        db_session.add(entry)
        db_session.commit()
        return entry
    return _make
