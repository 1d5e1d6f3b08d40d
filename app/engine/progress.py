"""
Progress Tracker — pure query over responses + the question bank.
"""
from dataclasses import dataclass, field, asdict
from typing import List

from sqlalchemy import select

from app.config import OPERATIONAL_DOMAINS
from app.database import get_session
from app.models.assessment import Assessment
from app.models.response import AssessmentResponse
from app.models.user import User
from app.engine.errors import AssessmentNotFoundError
from app.engine.question_bank import QuestionBank


@dataclass
class ProgressReport:
    percent: int
    questions_answered: int
    total_questions: int
    domains_complete: List[str] = field(default_factory=list)
    core_answered: int = 0
    core_total: int = 0

    @property
    def core_complete(self) -> bool:
        """All required (core, non-follow-up) questions answered."""
        return self.core_total > 0 and self.core_answered >= self.core_total

    def to_dict(self):
        d = asdict(self)
        d['core_complete'] = self.core_complete
        return d


def compute_percent(answered: int, total: int) -> int:
    """round(answered / total * 100), half-up, clamped to [0, 100]."""
    if not total or total <= 0:
        return 0
    pct = int(answered * 100 / total + 0.5)
    return max(0, min(100, pct))


class ProgressTracker:

    def __init__(self, question_bank=None, session_factory=None):
        self.session_factory = session_factory or get_session
        self.question_bank = question_bank or QuestionBank(self.session_factory)

    def progress(self, assessment_id: str, session=None) -> ProgressReport:
        own_session = session is None
        session = session or self.session_factory()
        try:
            assessment = session.get(Assessment, assessment_id)
            if assessment is None:
                raise AssessmentNotFoundError(assessment_id)
            user = session.get(User, assessment.user_id)
            industry = user.industry if user else None
            return self._report(session, assessment, industry)
        finally:
            if own_session:
                session.close()

    def _report(self, session, assessment, industry):
        rows = session.scalars(
            select(AssessmentResponse).where(AssessmentResponse.assessment_id == assessment.id)
        ).all()
        answered = {(r.domain_name, r.question_id) for r in rows if r.is_answered}

        total = assessment.total_questions or 0
        questions_answered = min(len(answered), total)

        domains_complete = []
        for domain in OPERATIONAL_DOMAINS:
            questions = self.question_bank.questions_for(industry, domain, assessment.id, session=session)
            if questions and all((domain, q.question_id) in answered for q in questions):
                domains_complete.append(domain)

        core = self.question_bank.core_questions(industry, session)
        core_answered = sum(1 for q in core if (q.domain_name, q.question_id) in answered)

        return ProgressReport(
            percent=compute_percent(questions_answered, total),
            questions_answered=questions_answered,
            total_questions=total,
            domains_complete=domains_complete,
            core_answered=core_answered,
            core_total=len(core),
        )
