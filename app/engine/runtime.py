"""
Composition root — wires config, scheduler, aggregator and lifecycle together.

Routes and RQ workers call get_engine(); tests call build_engine() with an
in-memory session factory, a fake clock and no queue.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from app.database import get_session
from app.engine.agents import AgentCapability, get_agent_capability
from app.engine.aggregator import DeliverableAggregator
from app.engine.clock import utcnow
from app.engine.lifecycle import LifecycleController
from app.engine.progress import ProgressTracker
from app.engine.question_bank import QuestionBank
from app.engine.scheduler import AnalysisScheduler
from app.engine.settings import EngineConfig, load_engine_config

logger = logging.getLogger('engine.runtime')


@dataclass
class Engine:
    config: EngineConfig
    session_factory: Callable
    question_bank: QuestionBank
    progress: ProgressTracker
    scheduler: AnalysisScheduler
    aggregator: DeliverableAggregator
    lifecycle: LifecycleController
    capability: Optional[AgentCapability] = None


def build_engine(session_factory=None, clock: Callable = utcnow, config: EngineConfig = None,
                 artifact_store=None, capability: AgentCapability = None,
                 enqueue: Optional[Callable[[str], None]] = None,
                 notify_tier: Optional[Callable] = None,
                 notify_outcome: Optional[Callable] = None) -> Engine:
    """
    Build a fully wired engine. `enqueue(job_id)` is called for every job
    that becomes queued; leave it None to drive jobs by hand.
    """
    session_factory = session_factory or get_session
    config = config or load_engine_config()
    if artifact_store is None:
        from app.services.artifacts import get_artifact_store
        artifact_store = get_artifact_store()

    question_bank = QuestionBank(session_factory)
    progress = ProgressTracker(question_bank, session_factory)
    scheduler = AnalysisScheduler(config, session_factory, clock)
    aggregator = DeliverableAggregator(config, artifact_store, session_factory, clock, notify=notify_tier)
    lifecycle = LifecycleController(config, scheduler, aggregator, progress, session_factory, clock,
                                    notify=notify_outcome)

    if enqueue is not None:
        def _enqueue_queued(event):
            if event.kind == 'queued':
                enqueue(event.job_id)
        scheduler.subscribe(_enqueue_queued)
    scheduler.subscribe(lifecycle.handle_job_event)

    return Engine(config, session_factory, question_bank, progress, scheduler, aggregator, lifecycle, capability)


_engine = None


def get_engine() -> Engine:
    """Process-wide engine backed by Postgres, RQ, R2/local artifacts and Slack."""
    global _engine
    if _engine is None:
        from app.engine.worker import enqueue_analysis_job
        from app.services.notifications import notify_tier_delivered, notify_assessment_finished
        config = load_engine_config()
        _engine = build_engine(
            config=config,
            capability=get_agent_capability(),
            enqueue=lambda job_id: enqueue_analysis_job(job_id, config.processing_timeout_minutes),
            notify_tier=notify_tier_delivered,
            notify_outcome=notify_assessment_finished,
        )
        logger.info("Engine initialised (config version=%s)", config.version)
    return _engine


def reset_engine():
    """Drop the process-wide engine (useful for testing)."""
    global _engine
    _engine = None
