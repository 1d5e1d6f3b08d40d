"""
Assessment + AssessmentDomain models.

One Assessment per paying engagement; one AssessmentDomain per
(assessment, domain), created lazily when analysis is dispatched.
"""
import uuid

from sqlalchemy import (
    Column, Text, Integer, Float, Numeric, Boolean, DateTime, JSON,
    ForeignKey, UniqueConstraint,
)
from sqlalchemy.sql import func

from app.database import Base
from app.config import DEFAULT_TOTAL_QUESTIONS, DEFAULT_CURRENCY


class Assessment(Base):
    __tablename__ = 'assessments'

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(Text, ForeignKey('users.id'), nullable=False, index=True)
    status = Column(Text, nullable=False, default='pending')
    progress = Column(Integer, default=0)
    questions_answered = Column(Integer, default=0)
    total_questions = Column(Integer, default=DEFAULT_TOTAL_QUESTIONS)
    documents_uploaded = Column(Integer, default=0)
    executive_summary_path = Column(Text, nullable=True)
    detailed_analysis_path = Column(Text, nullable=True)
    implementation_kit_path = Column(Text, nullable=True)
    payment_reference = Column(Text, nullable=True)
    payment_settled_at = Column(DateTime(timezone=True), nullable=True)
    amount = Column(Numeric(10, 2), nullable=True)
    currency = Column(Text, default=DEFAULT_CURRENCY)
    analysis_started_at = Column(DateTime(timezone=True), nullable=True)
    failure_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def artifact_paths(self):
        return {
            'executive_summary': self.executive_summary_path,
            'detailed_analysis': self.detailed_analysis_path,
            'implementation_kit': self.implementation_kit_path,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'status': self.status,
            'progress': self.progress or 0,
            'questions_answered': self.questions_answered or 0,
            'total_questions': self.total_questions,
            'documents_uploaded': self.documents_uploaded or 0,
            'artifacts': self.artifact_paths(),
            'payment_reference': self.payment_reference,
            'amount': float(self.amount) if self.amount is not None else None,
            'currency': self.currency,
            'failure_reason': self.failure_reason,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'analysis_started_at': self.analysis_started_at.isoformat() if self.analysis_started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }


class AssessmentDomain(Base):
    __tablename__ = 'assessment_domains'
    __table_args__ = (
        UniqueConstraint('assessment_id', 'domain_name', name='uq_assessment_domain'),
    )

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    assessment_id = Column(Text, ForeignKey('assessments.id'), nullable=False, index=True)
    domain_name = Column(Text, nullable=False)
    score = Column(Float, nullable=True)             # 1.0-10.0
    health = Column(Text, nullable=True)             # critical/warning/good/excellent
    summary = Column(Text, nullable=True)
    recommendations = Column(JSON, default=list)
    key_insights = Column(JSON, default=list)
    quick_wins = Column(JSON, default=list)
    risk_factors = Column(JSON, default=list)
    agent_id = Column(Text, ForeignKey('agents.id'), nullable=True)
    analysis_complete = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def result_dict(self):
        """The analysis result fields — what deliverables are built from."""
        return {
            'domain_name': self.domain_name,
            'score': self.score,
            'health': self.health,
            'summary': self.summary or '',
            'recommendations': list(self.recommendations or []),
            'key_insights': list(self.key_insights or []),
            'quick_wins': list(self.quick_wins or []),
            'risk_factors': list(self.risk_factors or []),
            'agent_id': self.agent_id,
        }

    def to_dict(self):
        d = self.result_dict()
        d['analysis_complete'] = bool(self.analysis_complete)
        return d
