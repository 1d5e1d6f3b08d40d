"""
Deliverable Aggregator — assembles the three SLA tiers from completed domains.

  executive_summary   quorum domains complete, or 24h since analysis started
  detailed_analysis   all domains complete, or 48h
  implementation_kit  all domains complete, or 72h with the quorum complete

A tier reached through its completeness condition is built once no jobs
are in flight, so it includes everything that was going to finish. A tier
reached through its deadline is built immediately from whatever is complete
(degraded), and needs at least min_domains_for_degraded domains.

Artifacts are content-addressed by a SHA-256 of the contributing domain
results. A tier is rebuilt only when that hash changes: for a degraded tier
when more domains complete, for a full one only when an included domain's
result changes (explicit re-analysis). Rebuilds wait until nothing is in flight.
A domain reopened for re-analysis keeps its last delivered result in any
tier that already included it, so no rebuild ever drops a domain.
"""
import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from sqlalchemy import select

from app.config import DELIVERABLE_TIERS
from app.database import get_session
from app.models.agent import Agent
from app.models.assessment import Assessment
from app.models.deliverable import Deliverable
from app.services.db import domains_by_assessment, deliverables_by_assessment, company_context
from app.engine.clock import utcnow, hours_since
from app.engine.deliverables import BUILDERS
from app.engine.errors import AssessmentNotFoundError
from app.engine.scheduler import has_outstanding_jobs

logger = logging.getLogger('engine.aggregator')

TIER_PATH_ATTR = {
    'executive_summary': 'executive_summary_path',
    'detailed_analysis': 'detailed_analysis_path',
    'implementation_kit': 'implementation_kit_path',
}

# Assessment statuses in which deliverables may be (re)built
ASSEMBLY_STATUSES = ('analysis', 'completed')


@dataclass
class TierOutcome:
    tier: str
    action: str          # waiting / insufficient / assembled / upgraded / unchanged / error
    path: Optional[str] = None
    degraded: bool = False
    domains: int = 0
    version: Optional[int] = None


@dataclass
class ReconcileResult:
    assessment_id: str
    skipped: bool = False
    elapsed_hours: float = 0.0
    quorum_met: bool = False
    domains_complete: List[str] = field(default_factory=list)
    settled: bool = False
    outcomes: Dict[str, TierOutcome] = field(default_factory=dict)

    @property
    def assembled(self) -> List[str]:
        return [t for t, o in self.outcomes.items() if o.action in ('assembled', 'upgraded')]


def content_hash(results: List[dict]) -> str:
    ordered = sorted(results, key=lambda r: r['domain_name'])
    payload = json.dumps(ordered, sort_keys=True, default=str)
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()


def artifact_key(assessment_id: str, tier: str, digest: str) -> str:
    return f'assessments/{assessment_id}/{tier}-{digest[:16]}.json'


class DeliverableAggregator:

    def __init__(self, config, artifact_store, session_factory=None, clock: Callable = utcnow,
                 notify: Optional[Callable] = None):
        self.config = config
        self.store = artifact_store
        self.session_factory = session_factory or get_session
        self.clock = clock
        self.notify = notify

    def reconcile(self, assessment_id: str, now=None) -> ReconcileResult:
        now = now or self.clock()
        result = ReconcileResult(assessment_id)
        delivered = []

        session = self.session_factory()
        try:
            assessment = session.get(Assessment, assessment_id)
            if assessment is None:
                raise AssessmentNotFoundError(assessment_id)
            if assessment.status not in ASSEMBLY_STATUSES or assessment.analysis_started_at is None:
                result.skipped = True
                return result

            rows = domains_by_assessment(session, assessment_id)
            complete = {r.domain_name: r.result_dict() for r in rows
                        if r.analysis_complete and r.domain_name in self.config.domains}
            # Reopened for re-analysis; the row still holds the last good result
            reopened = {r.domain_name: r.result_dict() for r in rows
                        if not r.analysis_complete and r.score is not None}

            result.elapsed_hours = hours_since(assessment.analysis_started_at, now)
            result.quorum_met = all(d in complete for d in self.config.quorum_domains)
            result.domains_complete = [d for d in self.config.domains if d in complete]
            result.settled = not has_outstanding_jobs(session, assessment_id)

            existing = {d.tier: d for d in deliverables_by_assessment(session, assessment_id)}
            context = company_context(session, assessment)

            for tier in DELIVERABLE_TIERS:
                outcome = self._reconcile_tier(session, assessment, tier, complete, reopened,
                                               existing.get(tier), result, context, now)
                result.outcomes[tier] = outcome
                if outcome.action in ('assembled', 'upgraded'):
                    delivered.append(outcome)

            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        for outcome in delivered:
            logger.info("Assessment %s: %s %s v%d (%d domains%s)",
                        assessment_id[:8], outcome.action, outcome.tier, outcome.version,
                        outcome.domains, ', degraded' if outcome.degraded else '')
            if self.notify:
                try:
                    self.notify(assessment_id, outcome)
                except Exception:
                    logger.error("Delivery notification failed for %s", assessment_id[:8], exc_info=True)
        return result

    # ── Per-tier decision ─────────────────────────────────────────────────

    def _degraded(self, tier, available) -> bool:
        if tier == 'executive_summary':
            return not all(d in available for d in self.config.quorum_domains)
        return len(available) < len(self.config.domains)

    def _reconcile_tier(self, session, assessment, tier, complete, reopened, prev, result, context,
                        now) -> TierOutcome:
        all_done = len(complete) == len(self.config.domains)
        degraded = self._degraded(tier, complete)
        ready = not degraded
        deadline = result.elapsed_hours >= self.config.sla_hours[tier]

        if prev is None:
            if not ((ready and (result.settled or all_done)) or deadline):
                return TierOutcome(tier, 'waiting')
            if len(complete) < max(1, self.config.min_domains_for_degraded):
                return TierOutcome(tier, 'insufficient')
            if tier == 'implementation_kit' and not result.quorum_met:
                return TierOutcome(tier, 'insufficient')
            return self._assemble(session, assessment, tier, complete, degraded, None, context, now)

        unchanged = TierOutcome(tier, 'unchanged', prev.path, bool(prev.degraded),
                                len(prev.domains_included or []), prev.version)
        if not result.settled:
            return unchanged
        if prev.degraded:
            # A delivered domain never drops out of a tier
            available = dict(complete)
            for d in prev.domains_included or []:
                if d not in available and d in reopened:
                    available[d] = reopened[d]
            contributing = [available[d] for d in self.config.domains if d in available]
            if content_hash(contributing) == prev.content_hash:
                return unchanged
            return self._assemble(session, assessment, tier, available, self._degraded(tier, available),
                                  prev, context, now)

        included = prev.domains_included or []
        if any(d not in complete for d in included):
            # An included domain was reopened for re-analysis
            return unchanged
        contributing = [complete[d] for d in included]
        if content_hash(contributing) == prev.content_hash:
            return unchanged
        return self._assemble(session, assessment, tier, complete, degraded, prev, context, now)

    def _assemble(self, session, assessment, tier, complete, degraded, prev, context, now) -> TierOutcome:
        results = [complete[d] for d in self.config.domains if d in complete]
        digest = content_hash(results)
        kwargs = {}
        if tier == 'detailed_analysis':
            kwargs['agents'] = self._agents(session, results)
        doc = BUILDERS[tier](context, results, self.config, degraded=degraded, **kwargs)
        version = (prev.version or 1) + 1 if prev else 1
        doc['version'] = version
        doc['generated_at'] = now.isoformat()

        try:
            path = self.store.put_json(artifact_key(assessment.id, tier, digest), doc)
        except Exception as e:
            # Retried on the next reconcile
            logger.error("Failed to store %s for %s: %s", tier, assessment.id[:8], e)
            return TierOutcome(tier, 'error', prev.path if prev else None)

        row = prev or Deliverable(assessment_id=assessment.id, tier=tier)
        row.path = path
        row.content_hash = digest
        row.domains_included = [r['domain_name'] for r in results]
        row.degraded = degraded
        row.version = version
        row.assembled_at = now
        if prev is None:
            session.add(row)
        setattr(assessment, TIER_PATH_ATTR[tier], path)

        return TierOutcome(tier, 'upgraded' if prev else 'assembled', path, degraded, len(results), version)

    # ── Helpers ───────────────────────────────────────────────────────────

    @staticmethod
    def _agents(session, results) -> Dict[str, dict]:
        ids = {r['agent_id'] for r in results if r.get('agent_id')}
        if not ids:
            return {}
        return {a.id: a.to_dict() for a in session.scalars(select(Agent).where(Agent.id.in_(ids)))}
