"""
AssessmentResponse model — one row per (assessment, domain, question).

Overwritten in place while the questionnaire is open; never deleted.
"""
import uuid

from sqlalchemy import Column, Text, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func

from app.database import Base


class AssessmentResponse(Base):
    __tablename__ = 'assessment_responses'
    __table_args__ = (
        UniqueConstraint('assessment_id', 'domain_name', 'question_id', name='uq_response_question'),
    )

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    assessment_id = Column(Text, ForeignKey('assessments.id'), nullable=False, index=True)
    domain_name = Column(Text, nullable=False)
    question_id = Column(Text, nullable=False)
    response = Column(Text, nullable=True)
    score = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_answered(self):
        return self.score is not None or bool((self.response or '').strip())

    def to_dict(self):
        return {
            'domain_name': self.domain_name,
            'question_id': self.question_id,
            'response': self.response,
            'score': self.score,
        }
