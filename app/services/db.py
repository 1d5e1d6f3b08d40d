"""
Read-side query helpers shared by the engine and the routes.

All take an open session; the caller owns the transaction.
"""
from typing import List, Optional, Sequence

from sqlalchemy import select

from app.models.analysis_job import AnalysisJob
from app.models.assessment import Assessment, AssessmentDomain
from app.models.deliverable import Deliverable
from app.models.user import User


def domains_by_assessment(session, assessment_id: str) -> List[AssessmentDomain]:
    return list(session.scalars(
        select(AssessmentDomain).where(AssessmentDomain.assessment_id == assessment_id)
    ))


def jobs_by_assessment(session, assessment_id: str,
                       statuses: Optional[Sequence[str]] = None) -> List[AnalysisJob]:
    """Job history in creation order, optionally filtered by status."""
    stmt = select(AnalysisJob).where(AnalysisJob.assessment_id == assessment_id)
    if statuses:
        stmt = stmt.where(AnalysisJob.status.in_(tuple(statuses)))
    return list(session.scalars(stmt.order_by(AnalysisJob.created_at, AnalysisJob.attempt)))


def deliverables_by_assessment(session, assessment_id: str) -> List[Deliverable]:
    return list(session.scalars(
        select(Deliverable).where(Deliverable.assessment_id == assessment_id)
    ))


def company_context(session, assessment: Assessment) -> dict:
    """Company fields from the owning user, as fed to analysis and deliverables."""
    user = session.get(User, assessment.user_id)
    if user is None:
        return {}
    return {
        'company_name': user.company_name,
        'industry': user.industry,
        'revenue': user.revenue,
        'team_size': user.team_size,
    }
