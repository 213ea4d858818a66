"""
Source Photo Model
User-uploaded photo and its content-policy validation state.
"""

from sqlalchemy import Column, String, DateTime, JSON

from dreamboat.core.database import Base, utcnow


class ValidationStatus:
    """Photo validation status constants."""
    PENDING = "pending"
    VALIDATED = "validated"
    FAILED = "failed"
    BYPASSED = "bypassed"

    # Re-validation is skipped once a photo reaches one of these
    SETTLED = (VALIDATED, BYPASSED)


class SourcePhoto(Base):
    """Uploaded source photo."""

    __tablename__ = "source_photos"

    id = Column(String, primary_key=True)  # photo_xxxx format
    owner_id = Column(String, nullable=False, index=True)

    storage_key = Column(String, nullable=False)
    original_file_name = Column(String, nullable=True)
    content_type = Column(String, nullable=False, default="image/jpeg")

    validation_status = Column(String, nullable=False, default=ValidationStatus.PENDING)
    validation_warnings = Column(JSON, default=list)
    validated_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<SourcePhoto {self.id} ({self.validation_status})>"

    @property
    def is_settled(self) -> bool:
        return self.validation_status in ValidationStatus.SETTLED
