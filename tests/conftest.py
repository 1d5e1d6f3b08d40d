"""Shared test fixtures."""
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import patch, MagicMock
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, import_models
from app.engine.agents import MockAgentCapability
from app.engine.catalogue import load_catalogue, seed_catalogue
from app.engine.runtime import build_engine
from app.engine.settings import EngineConfig
from app.models.agent import Agent
from app.models.analysis_job import AnalysisJob
from app.models.assessment import Assessment
from app.models.user import User
from app.services.artifacts import LocalArtifactStore


START = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable engine clock. Call it for the time; advance() to move it."""

    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, hours=0, minutes=0):
        self.now = self.now + timedelta(hours=hours, minutes=minutes)
        return self.now


class FailingCapability(MockAgentCapability):
    """Mock agent that raises for the listed domains."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []

    def invoke(self, agent, domain_name, context):
        self.calls.append(domain_name)
        if domain_name in self.failing:
            raise RuntimeError(f'{domain_name} agent unavailable')
        return super().invoke(agent, domain_name, context)


# ── Database ─────────────────────────────────────────────────────────────────

@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created, shared by every session."""
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    import_models()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    """Session for arranging and asserting. Engine operations use their own sessions."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(scope='session')
def catalogue():
    return load_catalogue()


@pytest.fixture
def seeded(session_factory, catalogue):
    """Agents + question catalogue loaded from the bundled YAML."""
    with session_factory() as session:
        counts = seed_catalogue(session, catalogue)
        session.commit()
    return counts


# ── Engine ───────────────────────────────────────────────────────────────────

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return EngineConfig()


@pytest.fixture
def artifact_dir(tmp_path):
    return tmp_path / 'artifacts'


@pytest.fixture
def capability():
    return FailingCapability()


@pytest.fixture
def engine(session_factory, clock, config, artifact_dir, capability, seeded):
    """Fully wired engine on the in-memory DB; jobs are driven by hand."""
    return build_engine(
        session_factory=session_factory,
        clock=clock,
        config=config,
        artifact_store=LocalArtifactStore(str(artifact_dir)),
        capability=capability,
        enqueue=None,
    )


@pytest.fixture
def make_user(session_factory):
    """Factory fixture — inserts a User and returns its id."""
    def _make(**overrides):
        fields = dict(
            email=None,
            first_name='Ada',
            last_name='Founder',
            company_name='Acme Widgets',
            industry=None,
            revenue='1M-10M',
            team_size=40,
        )
        fields.update(overrides)
        with session_factory() as session:
            user = User(**fields)
            session.add(user)
            session.commit()
            return user.id
    return _make


@pytest.fixture
def assessment_id(engine, make_user):
    """A fresh 'pending' assessment owned by a user with no industry."""
    return engine.lifecycle.create_assessment(make_user()).id


@pytest.fixture
def answer_core(engine, session_factory):
    """Answer every core question of an assessment with one score."""
    def _answer(assessment_id, score=2, industry=None, skip=()):
        with session_factory() as session:
            core = engine.question_bank.core_questions(industry, session)
        answers = [
            {'domain_name': q.domain_name, 'question_id': q.question_id, 'score': score}
            for q in core if (q.domain_name, q.question_id) not in skip
        ]
        return engine.lifecycle.record_responses(assessment_id, answers)
    return _answer


@pytest.fixture
def paid_assessment(engine, assessment_id, answer_core):
    """Assessment with the questionnaire done and payment settled → analysis, 12 jobs queued."""
    answer_core(assessment_id)
    engine.lifecycle.confirm_payment(assessment_id, payment_reference='pi_test_123')
    return assessment_id


@pytest.fixture
def drain(engine, session_factory):
    """Run queued jobs through the worker entry point until none are left."""
    from app.engine.worker import run_analysis_job

    def _drain(assessment_id, max_rounds=50):
        ran = []
        for _ in range(max_rounds):
            with session_factory() as session:
                queued = list(session.scalars(
                    select(AnalysisJob.id)
                    .where(AnalysisJob.assessment_id == assessment_id)
                    .where(AnalysisJob.status == 'queued')
                    .order_by(AnalysisJob.created_at, AnalysisJob.domain_name)
                ))
            if not queued:
                return ran
            for job_id in queued:
                run_analysis_job(job_id, engine=engine)
                ran.append(job_id)
        raise AssertionError('jobs still queued after max_rounds')
    return _drain


@pytest.fixture
def run_domain(engine, session_factory):
    """Run the queued job of a single domain through the worker entry point."""
    from app.engine.worker import run_analysis_job

    def _run(assessment_id, domain_name):
        with session_factory() as session:
            job_id = session.scalar(
                select(AnalysisJob.id)
                .where(AnalysisJob.assessment_id == assessment_id)
                .where(AnalysisJob.domain_name == domain_name)
                .where(AnalysisJob.status == 'queued')
            )
        assert job_id is not None, f'no queued job for {domain_name}'
        run_analysis_job(job_id, engine=engine)
        return job_id
    return _run


@pytest.fixture
def load_assessment(session_factory):
    def _load(assessment_id):
        with session_factory() as session:
            return session.get(Assessment, assessment_id)
    return _load


@pytest.fixture
def set_agents_active(session_factory):
    """Flip is_active on every seeded agent."""
    def _set(active):
        with session_factory() as session:
            for agent in session.query(Agent):
                agent.is_active = active
            session.commit()
    return _set


# ── Redis / Flask ────────────────────────────────────────────────────────────

@pytest.fixture
def mock_redis():
    """Mock Redis client. Returns a MagicMock with common Redis methods."""
    mock = MagicMock()
    mock.get.return_value = None
    mock.hgetall.return_value = {}
    with patch('app.extensions.redis_client', mock):
        yield mock


@pytest.fixture
def app(mock_redis, engine):
    """Flask test app whose routes talk to the in-memory engine."""
    from app import create_app
    with patch('app.routes.assessments.get_engine', return_value=engine), \
            patch('app.routes.payments.get_engine', return_value=engine), \
            patch('app.routes.monitor.get_engine', return_value=engine):
        app = create_app()
        app.config['TESTING'] = True
        yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c
