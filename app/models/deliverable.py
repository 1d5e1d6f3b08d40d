"""
Deliverable model — one row per (assessment, tier), updated on upgrade.

content_hash addresses the contributing domain result set; an unchanged
hash means the artifact is not rebuilt.
"""
from sqlalchemy import Column, Integer, Text, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint

from app.database import Base


class Deliverable(Base):
    __tablename__ = 'deliverables'
    __table_args__ = (
        UniqueConstraint('assessment_id', 'tier', name='uq_deliverable_tier'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    assessment_id = Column(Text, ForeignKey('assessments.id'), nullable=False, index=True)
    tier = Column(Text, nullable=False)        # executive_summary / detailed_analysis / implementation_kit
    path = Column(Text, nullable=False)
    content_hash = Column(Text, nullable=False)
    domains_included = Column(JSON, default=list)
    degraded = Column(Boolean, default=False)
    version = Column(Integer, default=1)
    assembled_at = Column(DateTime(timezone=True), nullable=False)

    def to_dict(self):
        return {
            'tier': self.tier,
            'path': self.path,
            'content_hash': self.content_hash,
            'domains_included': list(self.domains_included or []),
            'degraded': bool(self.degraded),
            'version': self.version,
            'assembled_at': self.assembled_at.isoformat() if self.assembled_at else None,
        }
