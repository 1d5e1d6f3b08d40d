"""
AnalysisJob model — one row per (assessment, domain) dispatch attempt.

Retries create new rows. The partial unique index below backs the
scheduler's one-outstanding-job-per-domain guard.
"""
import uuid

from sqlalchemy import Column, Text, Integer, Boolean, DateTime, ForeignKey, Index, text
from sqlalchemy.sql import func

from app.database import Base


class AnalysisJob(Base):
    __tablename__ = 'analysis_jobs'
    __table_args__ = (
        Index(
            'uq_analysis_jobs_outstanding', 'assessment_id', 'domain_name',
            unique=True,
            sqlite_where=text("status IN ('queued', 'processing')"),
            postgresql_where=text("status IN ('queued', 'processing')"),
        ),
    )

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    assessment_id = Column(Text, ForeignKey('assessments.id'), nullable=False, index=True)
    domain_name = Column(Text, nullable=False)
    agent_id = Column(Text, ForeignKey('agents.id'), nullable=False)
    status = Column(Text, nullable=False, default='queued')
    attempt = Column(Integer, nullable=False, default=1)
    prompt = Column(Text, nullable=True)
    response = Column(Text, nullable=True)
    tokens_used = Column(Integer, nullable=True)
    error = Column(Text, nullable=True)
    cancel_requested = Column(Boolean, default=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'assessment_id': self.assessment_id,
            'domain_name': self.domain_name,
            'agent_id': self.agent_id,
            'status': self.status,
            'attempt': self.attempt,
            'tokens_used': self.tokens_used,
            'error': self.error,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }
