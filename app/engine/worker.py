"""
RQ entry points — the functions workers actually execute.

run_analysis_job holds no DB session while the agent call is in flight, so
a slow domain never blocks dispatch, other domains or progress reads.
"""
import logging

from app.config import ANALYSIS_QUEUE

logger = logging.getLogger('engine.worker')


# ── Lazy RQ queue (avoids import-time Redis connection) ───────────────────────

_queue = None


def _get_queue():
    global _queue
    if _queue is None:
        from app.extensions import rq_connection
        from rq import Queue
        _queue = Queue(ANALYSIS_QUEUE, connection=rq_connection)
    return _queue


def enqueue_analysis_job(job_id: str, timeout_minutes: int = 10):
    """Hand one queued AnalysisJob to the RQ workers."""
    _get_queue().enqueue(run_analysis_job, job_id, job_timeout=timeout_minutes * 60)


def enqueue_sla_tick():
    _get_queue().enqueue(sla_tick, job_timeout=600)


# ── Job functions (enqueued via RQ) ───────────────────────────────────────────

def run_analysis_job(job_id: str, engine=None):
    """start → invoke agent → complete | fail."""
    from app.engine.agents import build_context, agent_descriptor
    from app.models.analysis_job import AnalysisJob
    from app.engine.runtime import get_engine
    from app.logging_config import ensure_logging

    if engine is None:
        # A bare `rq worker` process never runs create_app()
        ensure_logging('worker')
        engine = get_engine()
    if not engine.scheduler.start(job_id):
        return

    session = engine.session_factory()
    try:
        job = session.get(AnalysisJob, job_id)
        domain_name = job.domain_name
        context = build_context(session, job.assessment_id, domain_name)
        agent = agent_descriptor(session, job.agent_id)
    finally:
        session.close()

    try:
        result = engine.capability.invoke(agent, domain_name, context)
    except Exception as e:
        logger.warning("Agent call failed for job %s (%s): %s", job_id[:8], domain_name, e)
        engine.scheduler.fail(job_id, f'{type(e).__name__}: {e}')
        return

    engine.scheduler.complete(job_id, result.response_text, result.tokens_used, prompt=result.prompt)


def sla_tick(engine=None):
    """Periodic SLA pass (see LifecycleController.tick)."""
    from app.engine.runtime import get_engine
    from app.logging_config import ensure_logging
    if engine is None:
        ensure_logging('worker')
        engine = get_engine()
    evaluated = engine.lifecycle.tick()
    logger.info("SLA tick evaluated %d assessments", len(evaluated))
    return len(evaluated)
