"""
Generation Job Model
Aggregate record for one (photos x scenarios) generation request.
"""

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, JSON
from sqlalchemy.orm import relationship

from dreamboat.core.database import Base, utcnow


class GenerationStatus:
    """Generation job status constants."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    TERMINAL = (COMPLETED, FAILED)


class GenerationJob(Base):
    """
    Generation job model.

    Inserted before any task runs and finalized exactly once, so a row stuck
    in in_progress means the process died before finalization.
    """

    __tablename__ = "generation_jobs"

    id = Column(String, primary_key=True)  # gen_xxxx format
    owner_id = Column(String, nullable=False, index=True)
    payment_credit_id = Column(String, ForeignKey("payment_credits.id"), nullable=True)

    status = Column(String, nullable=False, default=GenerationStatus.IN_PROGRESS, index=True)
    total_tasks = Column(Integer, nullable=False)
    completed_tasks = Column(Integer, nullable=False, default=0)
    scenarios = Column(JSON, default=list)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    payment_credit = relationship("PaymentCredit")
    results = relationship("GeneratedResult", back_populates="generation_job")

    def __repr__(self):
        return f"<GenerationJob {self.id} {self.completed_tasks}/{self.total_tasks} ({self.status})>"

    @property
    def is_terminal(self) -> bool:
        return self.status in GenerationStatus.TERMINAL
