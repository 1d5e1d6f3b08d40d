"""
Question Bank — resolves the ordered question set for an industry + domain.

Follow-up visibility is re-evaluated against the recorded responses on
every call; nothing about branching is cached.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import select, or_

from app.database import get_session
from app.models.question import AssessmentQuestion
from app.models.response import AssessmentResponse
from app.engine.conditions import (
    Answer, ConditionError, parse_condition, legacy_triggers, is_legacy, evaluate,
)

logger = logging.getLogger('engine.question_bank')

FOLLOW_UP = 'follow_up'


class QuestionBank:

    def __init__(self, session_factory=None):
        self.session_factory = session_factory or get_session

    # ── Public API ────────────────────────────────────────────────────────

    def questions_for(self, industry: Optional[str], domain: str,
                      assessment_id: Optional[str] = None, session=None) -> List[AssessmentQuestion]:
        """
        Ordered questions for one domain. Follow-ups are included only when
        their trigger holds against the assessment's current answers; with
        no assessment_id no follow-up is shown.
        """
        own_session = session is None
        session = session or self.session_factory()
        try:
            catalogue = self._catalogue(session, industry, domain)
            answers = self.answers_for(session, assessment_id, domain) if assessment_id else {}
            return self._resolve(catalogue, answers)
        finally:
            if own_session:
                session.close()

    def core_questions(self, industry: Optional[str], session) -> List[AssessmentQuestion]:
        """Every non-follow-up question visible to an industry, across all domains."""
        stmt = (
            select(AssessmentQuestion)
            .where(AssessmentQuestion.is_active.is_(True))
            .where(AssessmentQuestion.question_type != FOLLOW_UP)
            .where(self._industry_filter(industry))
            .order_by(AssessmentQuestion.domain_name, AssessmentQuestion.order_index)
        )
        return list(session.scalars(stmt))

    @staticmethod
    def answers_for(session, assessment_id: str, domain: Optional[str] = None) -> Dict[str, Answer]:
        stmt = select(AssessmentResponse).where(AssessmentResponse.assessment_id == assessment_id)
        if domain is not None:
            stmt = stmt.where(AssessmentResponse.domain_name == domain)
        return {
            r.question_id: Answer(score=r.score, response=r.response)
            for r in session.scalars(stmt)
        }

    # ── Internals ─────────────────────────────────────────────────────────

    @staticmethod
    def _industry_filter(industry):
        if industry:
            return or_(AssessmentQuestion.industry.is_(None), AssessmentQuestion.industry == industry)
        return AssessmentQuestion.industry.is_(None)

    def _catalogue(self, session, industry, domain):
        stmt = (
            select(AssessmentQuestion)
            .where(AssessmentQuestion.domain_name == domain)
            .where(AssessmentQuestion.is_active.is_(True))
            .where(self._industry_filter(industry))
            .order_by(AssessmentQuestion.order_index, AssessmentQuestion.question_id)
        )
        return list(session.scalars(stmt))

    def _resolve(self, catalogue, answers):
        triggers = self._triggers(catalogue)
        resolved = []
        for q in catalogue:
            if q.question_type != FOLLOW_UP:
                resolved.append(q)
                continue
            rule = triggers.get(q.question_id)
            if rule is not None and evaluate(rule, answers):
                resolved.append(q)
        return resolved

    @staticmethod
    def _triggers(catalogue):
        """follow-up question_id → rule, from both the follow-up's own row and legacy parent rows."""
        triggers = {}
        for q in catalogue:
            logic = q.follow_up_logic
            if not logic:
                continue
            try:
                if is_legacy(logic):
                    for fid, rule in legacy_triggers(q.question_id, logic).items():
                        triggers.setdefault(fid, rule)
                elif q.question_type == FOLLOW_UP:
                    triggers[q.question_id] = parse_condition(logic)
            except ConditionError as e:
                # A broken rule hides the follow-up rather than breaking the questionnaire
                logger.warning("Ignoring follow-up rule on %s/%s: %s", q.domain_name, q.question_id, e)
        return triggers
