"""
Analysis Job Scheduler — one job per (assessment, domain) at a time.

Per-domain state machine:
  queued → processing → completed | failed
  failed → (new row) queued        while attempts < retry_budget

Every transition is a conditional UPDATE on the job row (WHERE status = <from>),
so a duplicate or out-of-order start/complete/fail from a second worker
matches zero rows and is logged and ignored. A partial unique index on
(assessment_id, domain_name) for queued/processing rows backs the
one-outstanding-job guard in dispatch.

Listeners receive JobEvents after the transaction that produced them has
committed. The runtime wires one that enqueues RQ work and one that drives
the lifecycle controller.
"""
import json
import logging
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from app.config import DOMAIN_TO_SPECIALTY, OUTSTANDING_JOB_STATUSES
from app.database import get_session
from app.models.agent import Agent
from app.models.analysis_job import AnalysisJob
from app.models.assessment import Assessment, AssessmentDomain
from app.engine.clock import utcnow, to_utc
from app.engine.errors import (
    AssessmentNotFoundError, DuplicateJobError, NoAgentAvailableError, AgentResponseError,
)

logger = logging.getLogger('engine.scheduler')

# Assessment statuses in which failed jobs are still retried
RETRYABLE_ASSESSMENT_STATUSES = ('paid', 'analysis', 'completed')


@dataclass
class JobEvent:
    kind: str            # queued / started / completed / failed / exhausted / cancelled
    job_id: str
    assessment_id: str
    domain_name: str
    attempt: int
    reason: Optional[str] = None


@dataclass
class DomainJobState:
    """Where one domain stands, derived from its job history."""
    domain_name: str
    complete: bool = False
    outstanding: bool = False
    attempts: int = 0
    last_status: Optional[str] = None

    def exhausted(self, budget: int) -> bool:
        return (not self.complete and not self.outstanding
                and self.last_status == 'failed' and self.attempts >= budget)


# ── Agent response parsing ────────────────────────────────────────────────────

_FENCE_RE = re.compile(r'^```(?:json)?\s*|\s*```$', re.IGNORECASE)


def _as_list(value):
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    return [str(v) for v in value if v is not None and str(v).strip()]


def parse_domain_result(text: str, config) -> dict:
    """
    Parse an agent's JSON reply into AssessmentDomain fields.

    Health is always derived from the score via the configured thresholds,
    whatever the agent claims.
    """
    if not text or not text.strip():
        raise AgentResponseError("Empty agent response")
    try:
        data = json.loads(_FENCE_RE.sub('', text.strip()))
    except json.JSONDecodeError as e:
        raise AgentResponseError(f"Agent response is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise AgentResponseError("Agent response is not a JSON object")

    try:
        score = float(data['score'])
    except (KeyError, TypeError, ValueError) as e:
        raise AgentResponseError(f"Agent response has no numeric score: {data.get('score')!r}") from e
    score = max(1.0, min(10.0, score))

    return {
        'score': score,
        'health': config.health_for(score),
        'summary': str(data.get('summary') or '').strip(),
        'recommendations': _as_list(data.get('recommendations')),
        'key_insights': _as_list(data.get('keyInsights', data.get('key_insights'))),
        'quick_wins': _as_list(data.get('quickWins', data.get('quick_wins'))),
        'risk_factors': _as_list(data.get('riskFactors', data.get('risk_factors'))),
    }


def has_outstanding_jobs(session, assessment_id: str) -> bool:
    """Any job for the assessment still queued or processing."""
    return session.scalar(
        select(AnalysisJob.id)
        .where(AnalysisJob.assessment_id == assessment_id)
        .where(AnalysisJob.status.in_(OUTSTANDING_JOB_STATUSES))
        .limit(1)
    ) is not None


# ── Agent selection ───────────────────────────────────────────────────────────

def select_agent(agents: List[Agent], domain: str) -> Agent:
    """
    First active agent whose specialty matches the domain, else the first
    active agent. `agents` must already be in stable (created_at, id) order.
    """
    if not agents:
        raise NoAgentAvailableError(domain)
    wanted = {DOMAIN_TO_SPECIALTY.get(domain, domain).lower(), domain.lower()}
    for agent in agents:
        if (agent.specialty or '').lower() in wanted:
            return agent
    return agents[0]


class AnalysisScheduler:

    def __init__(self, config, session_factory=None, clock: Callable = utcnow, listeners=None):
        self.config = config
        self.session_factory = session_factory or get_session
        self.clock = clock
        self.listeners: List[Callable[[JobEvent], None]] = list(listeners or [])

    def subscribe(self, listener: Callable[[JobEvent], None]):
        self.listeners.append(listener)

    # ── Public API ────────────────────────────────────────────────────────

    def dispatch(self, assessment_id: str) -> List[str]:
        """
        Create a queued job for every domain that is not complete, has no
        outstanding job and has retry budget left. All-or-none: any failure
        rolls back the whole batch. Returns the new job ids.
        """
        session = self.session_factory()
        events = []
        try:
            if session.get(Assessment, assessment_id) is None:
                raise AssessmentNotFoundError(assessment_id)

            agents = self._active_agents(session)
            states = self._domain_states(session, assessment_id)
            for domain in self.config.domains:
                state = states[domain]
                if state.complete or state.outstanding:
                    continue
                if state.exhausted(self.config.retry_budget):
                    logger.info("Dispatch %s: %s retry budget exhausted, skipping", assessment_id[:8], domain)
                    continue
                attempt = state.attempts + 1 if state.last_status == 'failed' else 1
                job = self._create_job(session, assessment_id, domain, attempt, agents)
                events.append(self._event('queued', job))

            session.commit()
        except IntegrityError:
            session.rollback()
            logger.info("Dispatch %s lost a race with a concurrent dispatch; nothing created", assessment_id[:8])
            return []
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        if events:
            logger.info("Dispatched %d analysis jobs for assessment %s", len(events), assessment_id[:8])
        self._emit(events)
        return [e.job_id for e in events]

    def enqueue_domain(self, assessment_id: str, domain: str, attempt: int = 1) -> str:
        """Queue one domain. Raises DuplicateJobError if a job is already outstanding."""
        session = self.session_factory()
        try:
            if session.get(Assessment, assessment_id) is None:
                raise AssessmentNotFoundError(assessment_id)
            self._guard_outstanding(session, assessment_id, domain)
            job = self._create_job(session, assessment_id, domain, attempt, self._active_agents(session))
            event = self._event('queued', job)
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise DuplicateJobError(assessment_id, domain) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        self._emit([event])
        return event.job_id

    def start(self, job_id: str) -> bool:
        """queued → processing. False (and a warning) if the job was not queued."""
        session = self.session_factory()
        try:
            job = session.get(AnalysisJob, job_id)
            if job is None:
                logger.warning("start(%s): job not found", job_id)
                return False
            if not self._transition(session, job_id, 'queued', status='processing', started_at=self.clock()):
                logger.warning("start(%s): job is '%s', not 'queued' — ignoring", job_id, job.status)
                session.rollback()
                return False
            session.commit()
            event = self._event('started', job)
        finally:
            session.close()

        logger.info("Job %s started (%s, attempt %d)", job_id[:8], event.domain_name, event.attempt)
        self._emit([event])
        return True

    def complete(self, job_id: str, response: str, tokens_used: Optional[int] = None,
                 prompt: Optional[str] = None) -> bool:
        """
        processing → completed, writing the parsed result into the domain row.
        An unparseable response is routed to fail(). A job flagged for
        cancellation has its result discarded.
        """
        session = self.session_factory()
        try:
            job = session.get(AnalysisJob, job_id)
            if job is None:
                logger.warning("complete(%s): job not found", job_id)
                return False
            if job.status != 'processing':
                logger.warning("complete(%s): job is '%s', not 'processing' — ignoring", job_id, job.status)
                return False
            if job.cancel_requested:
                return self._discard(session, job)

            try:
                result = parse_domain_result(response, self.config)
            except AgentResponseError as e:
                session.close()
                self.fail(job_id, str(e))
                return False

            now = self.clock()
            values = dict(status='completed', response=response, tokens_used=tokens_used, completed_at=now)
            if prompt is not None:
                values['prompt'] = prompt
            if not self._transition(session, job_id, 'processing', **values):
                session.rollback()
                logger.warning("complete(%s): lost race, job already left 'processing'", job_id)
                return False

            domain = self._domain_row(session, job.assessment_id, job.domain_name)
            if domain.analysis_complete:
                logger.warning("Domain %s/%s already complete — keeping existing result",
                               job.assessment_id[:8], job.domain_name)
            else:
                for key, value in result.items():
                    setattr(domain, key, value)
                domain.agent_id = job.agent_id
                domain.analysis_complete = True
            session.commit()
            event = self._event('completed', job)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.info("Job %s completed: %s score=%.1f (%s)",
                    job_id[:8], event.domain_name, result['score'], result['health'])
        self._emit([event])
        return True

    def fail(self, job_id: str, reason: str) -> Optional[str]:
        """
        processing → failed, then re-queue a fresh attempt while the retry
        budget allows. Returns the retry job id, if one was created.
        With no active agent the failure is still recorded and the domain
        waits, budget intact, for the next dispatch.
        """
        session = self.session_factory()
        events = []
        retry_id = None
        try:
            job = session.get(AnalysisJob, job_id)
            if job is None:
                logger.warning("fail(%s): job not found", job_id)
                return None
            if job.status != 'processing':
                logger.warning("fail(%s): job is '%s', not 'processing' — ignoring", job_id, job.status)
                return None
            if job.cancel_requested:
                self._discard(session, job)
                return None

            reason = (reason or 'unknown error')[:1000]
            if not self._transition(session, job_id, 'processing',
                                    status='failed', error=reason, completed_at=self.clock()):
                session.rollback()
                logger.warning("fail(%s): lost race, job already left 'processing'", job_id)
                return None
            # The failure stands on its own, whatever happens to the retry
            session.commit()
            events.append(self._event('failed', job, reason))
            logger.warning("Job %s failed (%s, attempt %d/%d): %s",
                           job_id[:8], job.domain_name, job.attempt, self.config.retry_budget, reason)

            assessment = session.get(Assessment, job.assessment_id)
            if job.attempt >= self.config.retry_budget or assessment.status not in RETRYABLE_ASSESSMENT_STATUSES:
                events.append(self._event('exhausted', job, reason))
                logger.error("Domain %s/%s permanently incomplete after %d attempts",
                             job.assessment_id[:8], job.domain_name, job.attempt)
            else:
                agents = self._active_agents(session)
                if not agents:
                    # Budget is kept; the next dispatch picks the domain up
                    logger.error("No active agent to retry %s/%s; left for the next dispatch",
                                 job.assessment_id[:8], job.domain_name)
                else:
                    retry = self._create_job(session, job.assessment_id, job.domain_name,
                                             job.attempt + 1, agents)
                    session.commit()
                    retry_id = retry.id
                    events.append(self._event('queued', retry))
        except IntegrityError:
            session.rollback()
            logger.info("Retry of %s/%s already queued elsewhere", job.assessment_id[:8], job.domain_name)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        self._emit(events)
        return retry_id

    def sweep_stuck(self, now=None) -> List[str]:
        """
        Fail jobs stuck in 'processing' past the timeout (they retry under
        the normal budget) and re-announce jobs left 'queued' that long, in
        case their queue message was lost. Returns the timed-out job ids.
        """
        now = now or self.clock()
        cutoff = now - timedelta(minutes=self.config.processing_timeout_minutes)
        session = self.session_factory()
        try:
            jobs = session.scalars(
                select(AnalysisJob).where(AnalysisJob.status.in_(OUTSTANDING_JOB_STATUSES))
            ).all()
            stuck = [j.id for j in jobs
                     if j.status == 'processing' and j.started_at and to_utc(j.started_at) < cutoff]
            stale = [self._event('queued', j) for j in jobs
                     if j.status == 'queued' and j.created_at and to_utc(j.created_at) < cutoff]
        finally:
            session.close()

        for job_id in stuck:
            try:
                self.fail(job_id, f'Timed out after {self.config.processing_timeout_minutes} minutes in processing')
            except Exception:
                logger.error("Could not time out stuck job %s", job_id[:8], exc_info=True)
        if stale:
            logger.info("Re-announcing %d stale queued jobs", len(stale))
            self._emit(stale)
        return stuck

    def cancel(self, assessment_id: str) -> Dict[str, int]:
        """Cancel queued jobs; flag processing ones so their result is discarded."""
        session = self.session_factory()
        events = []
        try:
            jobs = session.scalars(
                select(AnalysisJob)
                .where(AnalysisJob.assessment_id == assessment_id)
                .where(AnalysisJob.status.in_(OUTSTANDING_JOB_STATUSES))
            ).all()
            cancelled = flagged = 0
            for job in jobs:
                if job.status == 'queued':
                    job.status = 'cancelled'
                    job.completed_at = self.clock()
                    events.append(self._event('cancelled', job))
                    cancelled += 1
                else:
                    job.cancel_requested = True
                    flagged += 1
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.info("Cancelled analysis for %s: %d queued cancelled, %d in-flight flagged",
                    assessment_id[:8], cancelled, flagged)
        self._emit(events)
        return {'cancelled': cancelled, 'flagged': flagged}

    def reanalyze(self, assessment_id: str, domain: str) -> str:
        """Explicitly re-run a domain: reopen it and queue a fresh attempt-1 job."""
        if domain not in self.config.domains:
            raise ValueError(f"Unknown domain: {domain}")
        session = self.session_factory()
        try:
            if session.get(Assessment, assessment_id) is None:
                raise AssessmentNotFoundError(assessment_id)
            self._guard_outstanding(session, assessment_id, domain)
            agents = self._active_agents(session)
            if not agents:
                raise NoAgentAvailableError(domain)
            row = self._domain_row(session, assessment_id, domain)
            row.analysis_complete = False
            job = self._create_job(session, assessment_id, domain, 1, agents)
            event = self._event('queued', job)
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise DuplicateJobError(assessment_id, domain) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.info("Re-analysis queued for %s/%s", assessment_id[:8], domain)
        self._emit([event])
        return event.job_id

    # ── Queries ───────────────────────────────────────────────────────────

    def domain_states(self, assessment_id: str, session=None) -> Dict[str, DomainJobState]:
        own_session = session is None
        session = session or self.session_factory()
        try:
            return self._domain_states(session, assessment_id)
        finally:
            if own_session:
                session.close()

    def has_outstanding(self, assessment_id: str, session) -> bool:
        return has_outstanding_jobs(session, assessment_id)

    # ── Internals ─────────────────────────────────────────────────────────

    @staticmethod
    def _active_agents(session) -> List[Agent]:
        return list(session.scalars(
            select(Agent).where(Agent.is_active.is_(True)).order_by(Agent.created_at, Agent.id)
        ))

    def _domain_states(self, session, assessment_id) -> Dict[str, DomainJobState]:
        states = {d: DomainJobState(d) for d in self.config.domains}
        for row in session.scalars(
            select(AssessmentDomain).where(AssessmentDomain.assessment_id == assessment_id)
        ):
            if row.domain_name in states:
                states[row.domain_name].complete = bool(row.analysis_complete)

        jobs = session.scalars(
            select(AnalysisJob)
            .where(AnalysisJob.assessment_id == assessment_id)
            .order_by(AnalysisJob.created_at, AnalysisJob.attempt)
        ).all()
        for job in jobs:
            state = states.get(job.domain_name)
            if state is None:
                continue
            if job.status in OUTSTANDING_JOB_STATUSES:
                state.outstanding = True
            # Latest attempt wins; attempt resets to 1 on explicit re-analysis
            state.attempts = job.attempt
            state.last_status = job.status
        return states

    def _guard_outstanding(self, session, assessment_id, domain):
        existing = session.scalar(
            select(AnalysisJob.id)
            .where(AnalysisJob.assessment_id == assessment_id)
            .where(AnalysisJob.domain_name == domain)
            .where(AnalysisJob.status.in_(OUTSTANDING_JOB_STATUSES))
            .limit(1)
        )
        if existing is not None:
            raise DuplicateJobError(assessment_id, domain, existing)

    def _create_job(self, session, assessment_id, domain, attempt, agents) -> AnalysisJob:
        agent = select_agent(agents, domain)
        row = self._domain_row(session, assessment_id, domain)
        if row.agent_id is None:
            row.agent_id = agent.id
        job = AnalysisJob(
            assessment_id=assessment_id,
            domain_name=domain,
            agent_id=agent.id,
            status='queued',
            attempt=attempt,
            created_at=self.clock(),
        )
        session.add(job)
        session.flush()
        return job

    @staticmethod
    def _domain_row(session, assessment_id, domain) -> AssessmentDomain:
        """Get or lazily create the AssessmentDomain row."""
        row = session.scalar(
            select(AssessmentDomain)
            .where(AssessmentDomain.assessment_id == assessment_id)
            .where(AssessmentDomain.domain_name == domain)
        )
        if row is None:
            row = AssessmentDomain(assessment_id=assessment_id, domain_name=domain, analysis_complete=False)
            session.add(row)
            session.flush()
        return row

    @staticmethod
    def _transition(session, job_id, from_status, **values) -> bool:
        result = session.execute(
            update(AnalysisJob)
            .where(AnalysisJob.id == job_id)
            .where(AnalysisJob.status == from_status)
            .values(**values)
        )
        return result.rowcount == 1

    def _discard(self, session, job) -> bool:
        """Late result for a cancelled assessment: close the job, write nothing."""
        event = self._event('cancelled', job)
        ok = self._transition(session, job.id, 'processing', status='cancelled', completed_at=self.clock())
        session.commit()
        session.close()
        if ok:
            logger.info("Discarded result of cancelled job %s (%s)", event.job_id[:8], event.domain_name)
            self._emit([event])
        return False

    @staticmethod
    def _event(kind, job, reason=None) -> JobEvent:
        return JobEvent(kind=kind, job_id=job.id, assessment_id=job.assessment_id,
                        domain_name=job.domain_name, attempt=job.attempt, reason=reason)

    def _emit(self, events):
        for event in events:
            for listener in self.listeners:
                try:
                    listener(event)
                except Exception:
                    logger.error("Listener failed for %s event on job %s",
                                 event.kind, event.job_id[:8], exc_info=True)
