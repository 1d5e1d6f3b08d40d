"""
User model — the paying customer and the company context fed to analysis.
"""
import uuid

from sqlalchemy import Column, Text, Integer, DateTime
from sqlalchemy.sql import func

from app.database import Base


class User(Base):
    __tablename__ = 'users'

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(Text, unique=True, nullable=True)
    first_name = Column(Text, nullable=True)
    last_name = Column(Text, nullable=True)
    company_name = Column(Text, nullable=True)
    industry = Column(Text, nullable=True)        # drives industry-specific questions
    revenue = Column(Text, nullable=True)         # revenue band, e.g. '1M-10M'
    team_size = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
