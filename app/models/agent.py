"""
Agent model — specialist analysis persona. Read-mostly reference data.
"""
import uuid

from sqlalchemy import Column, Text, Boolean, DateTime
from sqlalchemy.sql import func

from app.database import Base


class Agent(Base):
    __tablename__ = 'agents'

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(Text, nullable=False)
    specialty = Column(Text, nullable=False)
    background = Column(Text, nullable=True)
    expertise = Column(Text, nullable=True)
    experience = Column(Text, nullable=True)
    profile_image_url = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'specialty': self.specialty,
            'background': self.background or '',
            'expertise': self.expertise or '',
            'profile_image_url': self.profile_image_url or '',
            'is_active': bool(self.is_active),
        }
