"""
AssessmentQuestion model — catalogue entry. Immutable at runtime.

follow_up_logic holds the JSON trigger condition for follow-up questions;
the engine parses it into a typed condition (app/engine/conditions.py).
"""
import uuid

from sqlalchemy import Column, Text, Integer, Boolean, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func

from app.database import Base


class AssessmentQuestion(Base):
    __tablename__ = 'assessment_questions'
    __table_args__ = (
        UniqueConstraint('domain_name', 'question_id', name='uq_question_domain_qid'),
    )

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    domain_name = Column(Text, nullable=False, index=True)
    question_id = Column(Text, nullable=False)
    question_text = Column(Text, nullable=False)
    question_type = Column(Text, default='core')     # core / industry_specific / follow_up
    industry = Column(Text, nullable=True)           # null = shown to every industry
    order_index = Column(Integer, nullable=False)
    options = Column(JSON, nullable=False, default=list)   # [{text, value}, ...]
    follow_up_logic = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self):
        return {
            'domain_name': self.domain_name,
            'question_id': self.question_id,
            'question_text': self.question_text,
            'question_type': self.question_type,
            'industry': self.industry,
            'order_index': self.order_index,
            'options': self.options or [],
        }
