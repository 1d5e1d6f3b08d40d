"""
Assessment Lifecycle Controller — the top-level state machine.

  pending → in_progress → awaiting_payment → paid → analysis → completed | failed

  pending → in_progress           first response recorded
  in_progress → awaiting_payment  every core (non-follow-up) question answered
  awaiting_payment → paid         payment settled (the only dispatch trigger)
  paid → analysis                 all 12 domains dispatched in one batch
  analysis → completed            all domains complete, or 72h with quorum
  analysis → failed               72h without quorum and nothing in flight

Payment may settle before the questionnaire is finished; settlement is
remembered and the assessment goes straight to paid → analysis once the
last core question is answered. A failed payment, or a cancellation,
ends the assessment as failed.
"""
import logging
from typing import Callable, Iterable, List, Optional

from sqlalchemy import select

from app.config import OPEN_STATUSES, DEFAULT_TOTAL_QUESTIONS, ASSESSMENT_PRICE, DEFAULT_CURRENCY
from app.database import get_session
from app.models.assessment import Assessment
from app.models.document import Document
from app.models.response import AssessmentResponse
from app.models.user import User
from app.engine.clock import utcnow
from app.engine.errors import AssessmentNotFoundError, AssessmentLockedError, NoAgentAvailableError
from app.engine.progress import ProgressTracker, compute_percent
from app.services.db import domains_by_assessment, jobs_by_assessment

logger = logging.getLogger('engine.lifecycle')

# Job events that can change what the aggregator or terminal decision sees
RECONCILE_EVENTS = ('completed', 'exhausted', 'cancelled')


class LifecycleController:

    def __init__(self, config, scheduler, aggregator, progress_tracker: ProgressTracker = None,
                 session_factory=None, clock: Callable = utcnow, notify: Optional[Callable] = None):
        self.config = config
        self.scheduler = scheduler
        self.aggregator = aggregator
        self.session_factory = session_factory or get_session
        self.progress_tracker = progress_tracker or ProgressTracker(session_factory=self.session_factory)
        self.clock = clock
        self.notify = notify

    # ── Questionnaire ─────────────────────────────────────────────────────

    def create_assessment(self, user_id: str, total_questions: int = DEFAULT_TOTAL_QUESTIONS,
                          amount: float = ASSESSMENT_PRICE, currency: str = DEFAULT_CURRENCY) -> Assessment:
        session = self.session_factory()
        try:
            if session.get(User, user_id) is None:
                raise ValueError(f"User {user_id} not found")
            assessment = Assessment(
                user_id=user_id,
                status='pending',
                progress=0,
                questions_answered=0,
                total_questions=total_questions,
                documents_uploaded=0,
                amount=amount,
                currency=currency,
                created_at=self.clock(),
            )
            session.add(assessment)
            session.commit()
            logger.info("Created assessment %s for user %s", assessment.id[:8], user_id[:8])
            return assessment
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def record_responses(self, assessment_id: str, answers: Iterable[dict]) -> dict:
        """
        Upsert answers ({domain_name, question_id, score?, response?}) and
        recompute counters. Returns the progress report dict.
        """
        session = self.session_factory()
        try:
            assessment = self._get(session, assessment_id)
            if assessment.status not in OPEN_STATUSES:
                raise AssessmentLockedError(assessment_id, assessment.status)

            existing = {
                (r.domain_name, r.question_id): r
                for r in session.scalars(
                    select(AssessmentResponse).where(AssessmentResponse.assessment_id == assessment_id)
                )
            }
            for a in answers:
                key = (a['domain_name'], str(a['question_id']))
                row = existing.get(key)
                if row is None:
                    row = AssessmentResponse(assessment_id=assessment_id, domain_name=key[0], question_id=key[1])
                    session.add(row)
                    existing[key] = row
                row.score = a.get('score')
                row.response = a.get('response')
            session.flush()

            report = self.progress_tracker.progress(assessment_id, session=session)
            assessment.questions_answered = report.questions_answered
            assessment.progress = compute_percent(report.questions_answered, assessment.total_questions)

            if assessment.status == 'pending' and report.questions_answered > 0:
                self._set_status(assessment, 'in_progress')
            if assessment.status == 'in_progress' and report.core_complete:
                self._set_status(assessment, 'awaiting_payment')
            settle_now = assessment.status == 'awaiting_payment' and assessment.payment_settled_at is not None
            if settle_now:
                self._set_status(assessment, 'paid')
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        if settle_now:
            self.start_analysis(assessment_id)
        return report.to_dict()

    def record_document(self, assessment_id: str, file_name: str, object_path: str,
                        file_size: int = None, file_type: str = None) -> Document:
        session = self.session_factory()
        try:
            assessment = self._get(session, assessment_id)
            if assessment.status not in OPEN_STATUSES:
                raise AssessmentLockedError(assessment_id, assessment.status)
            doc = Document(assessment_id=assessment_id, file_name=file_name, object_path=object_path,
                           file_size=file_size, file_type=file_type)
            session.add(doc)
            assessment.documents_uploaded = (assessment.documents_uploaded or 0) + 1
            session.commit()
            return doc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ── Payment ───────────────────────────────────────────────────────────

    def confirm_payment(self, assessment_id: str, payment_reference: str = None) -> str:
        """
        Payment settled. Idempotent: a repeated event for an assessment that
        is already paid or beyond is ignored. Returns the resulting status.
        """
        session = self.session_factory()
        start = False
        try:
            assessment = self._get(session, assessment_id)
            if assessment.payment_settled_at is not None or assessment.status not in OPEN_STATUSES:
                logger.info("Payment for %s already recorded (status=%s) — ignoring",
                            assessment_id[:8], assessment.status)
                return assessment.status
            assessment.payment_settled_at = self.clock()
            if payment_reference:
                assessment.payment_reference = payment_reference
            if assessment.status == 'awaiting_payment':
                self._set_status(assessment, 'paid')
                start = True
            else:
                logger.info("Payment for %s settled early (status=%s); analysis starts when questionnaire completes",
                            assessment_id[:8], assessment.status)
            status = assessment.status
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        if start:
            return self.start_analysis(assessment_id)
        return status

    def payment_failed(self, assessment_id: str, reason: str = 'Payment failed') -> str:
        session = self.session_factory()
        try:
            assessment = self._get(session, assessment_id)
            if assessment.status != 'awaiting_payment':
                logger.warning("Payment failure for %s in status '%s' — ignoring", assessment_id[:8], assessment.status)
                return assessment.status
            self._finish(assessment, 'failed', reason)
            session.commit()
            return assessment.status
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ── Analysis ──────────────────────────────────────────────────────────

    def start_analysis(self, assessment_id: str) -> str:
        """
        paid → analysis. The dispatch batch is all-or-none; if it cannot be
        created (no agents) the assessment stays paid and the SLA tick retries.
        """
        session = self.session_factory()
        try:
            assessment = self._get(session, assessment_id)
            if assessment.status != 'paid':
                logger.warning("start_analysis(%s): status is '%s', not 'paid' — ignoring",
                               assessment_id[:8], assessment.status)
                return assessment.status
        finally:
            session.close()

        try:
            self.scheduler.dispatch(assessment_id)
        except NoAgentAvailableError as e:
            logger.error("Cannot start analysis for %s: %s", assessment_id[:8], e)
            return 'paid'

        session = self.session_factory()
        try:
            assessment = self._get(session, assessment_id)
            if assessment.status == 'paid':
                assessment.analysis_started_at = self.clock()
                self._set_status(assessment, 'analysis')
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        self.evaluate(assessment_id)
        return 'analysis'

    def handle_job_event(self, event):
        """Scheduler listener: reconcile deliverables and re-check the terminal rule."""
        if event.kind in RECONCILE_EVENTS:
            self.evaluate(event.assessment_id)

    def evaluate(self, assessment_id: str, now=None) -> str:
        """Reconcile deliverables, then decide analysis → completed / failed."""
        now = now or self.clock()
        result = self.aggregator.reconcile(assessment_id, now=now)

        session = self.session_factory()
        finished = None
        try:
            assessment = self._get(session, assessment_id)
            if assessment.status != 'analysis':
                return assessment.status

            all_done = len(result.domains_complete) == len(self.config.domains)
            deadline = result.elapsed_hours >= self.config.final_deadline_hours
            if all_done or (deadline and result.quorum_met):
                self._finish(assessment, 'completed')
                finished = assessment
            elif deadline and not self.scheduler.has_outstanding(assessment_id, session):
                missing = [d for d in self.config.quorum_domains if d not in result.domains_complete]
                reason = f"SLA elapsed without quorum; incomplete: {', '.join(missing)}"
                logger.error("Assessment %s failed: %s", assessment_id[:8], reason)
                self._finish(assessment, 'failed', reason)
                finished = assessment
            status = assessment.status
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        if finished is not None and self.notify:
            try:
                self.notify(finished)
            except Exception:
                logger.error("Outcome notification failed for %s", assessment_id[:8], exc_info=True)
        return status

    def tick(self, now=None) -> List[str]:
        """
        Periodic SLA pass: retry stalled paid → analysis, time out stuck
        jobs, re-dispatch domains whose retry had no agent, then reconcile
        and evaluate every assessment still open. A failure on one
        assessment is logged and the pass moves on. Returns the ids evaluated.
        """
        now = now or self.clock()
        session = self.session_factory()
        try:
            paid = list(session.scalars(select(Assessment.id).where(Assessment.status == 'paid')))
            active = list(session.scalars(
                select(Assessment.id).where(Assessment.status.in_(('analysis', 'completed')))
            ))
        finally:
            session.close()

        for assessment_id in paid:
            try:
                self.start_analysis(assessment_id)
            except Exception:
                logger.error("SLA tick could not start analysis for %s", assessment_id[:8], exc_info=True)

        try:
            self.scheduler.sweep_stuck(now)
        except Exception:
            logger.error("SLA tick could not sweep stuck jobs", exc_info=True)

        for assessment_id in active:
            try:
                self.scheduler.dispatch(assessment_id)
            except NoAgentAvailableError as e:
                logger.error("Re-dispatch for %s waiting on agents: %s", assessment_id[:8], e)
            except Exception:
                logger.error("SLA tick could not re-dispatch %s", assessment_id[:8], exc_info=True)

        for assessment_id in active:
            try:
                self.evaluate(assessment_id, now=now)
            except Exception:
                logger.error("SLA tick failed for assessment %s", assessment_id[:8], exc_info=True)
        return active

    # ── Cancellation / re-analysis ────────────────────────────────────────

    def cancel(self, assessment_id: str, reason: str = 'Cancelled') -> str:
        """Cancel or refund: stop outstanding jobs and end the assessment as failed."""
        session = self.session_factory()
        try:
            assessment = self._get(session, assessment_id)
            if assessment.status in ('completed', 'failed'):
                logger.warning("cancel(%s): already '%s' — ignoring", assessment_id[:8], assessment.status)
                return assessment.status
            self._finish(assessment, 'failed', reason)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        self.scheduler.cancel(assessment_id)
        return 'failed'

    def reanalyze(self, assessment_id: str, domain: str) -> str:
        session = self.session_factory()
        try:
            assessment = self._get(session, assessment_id)
            if assessment.status not in ('analysis', 'completed'):
                raise AssessmentLockedError(assessment_id, assessment.status)
        finally:
            session.close()
        return self.scheduler.reanalyze(assessment_id, domain)

    # ── Read surface ──────────────────────────────────────────────────────

    def analysis_status(self, assessment_id: str) -> dict:
        session = self.session_factory()
        try:
            assessment = self._get(session, assessment_id)
            domains = domains_by_assessment(session, assessment_id)
            jobs = jobs_by_assessment(session, assessment_id)
            by_name = {d.domain_name: d for d in domains}
            completed = sum(1 for d in domains if d.analysis_complete)
            total = len(self.config.domains)
            return {
                'assessment_id': assessment_id,
                'status': assessment.status,
                'analysis_progress': compute_percent(completed, total),
                'domains_complete': completed,
                'domains_total': total,
                'domains': [
                    by_name[name].to_dict() if name in by_name
                    else {'domain_name': name, 'analysis_complete': False}
                    for name in self.config.domains
                ],
                'jobs': [j.to_dict() for j in jobs],
                'artifacts': assessment.artifact_paths(),
                'failure_reason': assessment.failure_reason,
            }
        finally:
            session.close()

    # ── Internals ─────────────────────────────────────────────────────────

    @staticmethod
    def _get(session, assessment_id) -> Assessment:
        assessment = session.get(Assessment, assessment_id)
        if assessment is None:
            raise AssessmentNotFoundError(assessment_id)
        return assessment

    def _set_status(self, assessment, status):
        logger.info("Assessment %s: %s → %s", assessment.id[:8], assessment.status, status)
        assessment.status = status
        assessment.updated_at = self.clock()

    def _finish(self, assessment, status, reason=None):
        self._set_status(assessment, status)
        assessment.completed_at = self.clock()
        if reason:
            assessment.failure_reason = reason
