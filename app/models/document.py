"""
Document model — uploaded file metadata. Read-only to the engine.
"""
import uuid

from sqlalchemy import Column, Text, Integer, DateTime, ForeignKey
from sqlalchemy.sql import func

from app.database import Base


class Document(Base):
    __tablename__ = 'documents'

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    assessment_id = Column(Text, ForeignKey('assessments.id'), nullable=False, index=True)
    file_name = Column(Text, nullable=False)
    file_size = Column(Integer, nullable=True)
    file_type = Column(Text, nullable=True)
    object_path = Column(Text, nullable=False)
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self):
        return {
            'file_name': self.file_name,
            'file_size': self.file_size,
            'file_type': self.file_type,
            'object_path': self.object_path,
        }
