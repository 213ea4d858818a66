"""
Generated Result Model
One synthesized image for a (source photo, scenario) pair.
"""

from sqlalchemy import Column, String, Text, DateTime, Integer, ForeignKey, Boolean
from sqlalchemy.orm import relationship

from dreamboat.core.database import Base, utcnow


class GeneratedResult(Base):
    """Generated image record."""

    __tablename__ = "generated_results"

    id = Column(String, primary_key=True)  # res_xxxx format
    owner_id = Column(String, nullable=False, index=True)
    generation_job_id = Column(String, ForeignKey("generation_jobs.id"), nullable=True, index=True)
    source_photo_id = Column(String, ForeignKey("source_photos.id"), nullable=False)

    scenario = Column(String, nullable=False)
    prompt = Column(Text, nullable=False)

    # Storage locator and provider trace id
    storage_key = Column(String, nullable=False)
    provider_request_id = Column(String, nullable=True)

    # Curated profile slot (1..6), unique per owner
    profile_order = Column(Integer, nullable=True)
    is_sample = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    # Relationships
    generation_job = relationship("GenerationJob", back_populates="results")
    source_photo = relationship("SourcePhoto")

    def __repr__(self):
        slot = f" slot={self.profile_order}" if self.profile_order else ""
        return f"<GeneratedResult {self.id} {self.scenario}{slot}>"
