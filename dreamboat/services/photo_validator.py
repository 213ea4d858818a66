"""
Photo Validator
Screens uploaded source photos against the content policy with a
rate-limited, retried vision-model call.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional

from pydantic import BaseModel, StrictBool, ValidationError
from sqlalchemy.orm import Session

from dreamboat.core.database import utcnow
from dreamboat.models.photo import SourcePhoto, ValidationStatus
from dreamboat.workers.base import (
    ExhaustedRetriesError,
    RetryExecutor,
    ValidationFailure,
    is_rate_limit_error,
)
from dreamboat.workers.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


CRITERIA_PROMPT = """Analyze this photo for dating profile suitability. Evaluate the following criteria:

1. MULTIPLE_PEOPLE: Is there more than one person clearly visible in this photo? (Look for multiple distinct faces or bodies)
2. FACE_VISIBILITY: Is the main subject's face completely covered, obscured, or significantly blurred? (Sunglasses are OK, but masks, heavy blur, or turned away are not)
3. LIGHTING: Is the lighting so dark that the main subject's face is not clearly visible?
4. SCREENSHOT: Is this a screenshot of another photo, social media post, or screen capture? (Look for UI elements, status bars, app interfaces, photo-of-a-screen artifacts, watermarks from other apps, or visible device bezels)
5. FACE_PARTIALLY_COVERED: Are key facial features (eyes, nose, mouth, chin, or most of the hair/forehead) partially covered or hidden? (e.g., hand covering mouth, hair covering eyes, cropped forehead, chin cut off, face cut off at edges - sunglasses alone are OK)

Respond with ONLY a valid JSON object in this exact format, no additional text:
{"multiple_people": true or false, "face_covered_or_blurred": true or false, "poor_lighting": true or false, "is_screenshot": true or false, "face_partially_covered": true or false}"""


class ValidationWarning(str, Enum):
    """Content-policy concerns a photo can raise."""
    MULTIPLE_PEOPLE = "multiple_people"
    FACE_COVERED_OR_BLURRED = "face_covered_or_blurred"
    POOR_LIGHTING = "poor_lighting"
    IS_SCREENSHOT = "is_screenshot"
    FACE_PARTIALLY_COVERED = "face_partially_covered"


class ValidationCriteria(BaseModel):
    """Vision model verdict. Every flag is required and must be a real boolean."""
    multiple_people: StrictBool
    face_covered_or_blurred: StrictBool
    poor_lighting: StrictBool
    is_screenshot: StrictBool
    face_partially_covered: StrictBool

    class Config:
        extra = "forbid"

    def warnings(self) -> FrozenSet[ValidationWarning]:
        return frozenset(w for w in ValidationWarning if getattr(self, w.value))


@dataclass
class ValidationResult:
    """Outcome of validating one photo."""
    photo_id: str
    is_valid: bool
    warnings: FrozenSet[ValidationWarning] = field(default_factory=frozenset)
    status: str = ValidationStatus.PENDING
    error: Optional[str] = None
    details: Optional[ValidationCriteria] = None  # Per-criterion flags from a fresh analysis

    def to_dict(self) -> dict:
        return {
            "photo_id": self.photo_id,
            "is_valid": self.is_valid,
            "warnings": sorted(w.value for w in self.warnings),
            "status": self.status,
            "error": self.error,
            "details": self.details.model_dump() if self.details else None,
        }


class PhotoNotFoundError(LookupError):
    """No source photo with the given id."""


def parse_criteria(raw: str) -> ValidationCriteria:
    """
    Decode the vision model response.

    Raises:
        ValidationFailure: the text is not JSON or does not match the schema
    """
    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise ValidationFailure(f"Invalid JSON from vision model: {e}", details={"raw": raw})

    try:
        return ValidationCriteria.model_validate(data)
    except ValidationError as e:
        raise ValidationFailure(
            f"Vision response does not match the criteria schema: {e.error_count()} error(s)",
            details={"raw": raw},
        )


class PhotoValidator:
    """
    Validates source photos once and records the verdict on the photo row.

    Photos already validated or bypassed short-circuit with their stored
    result. Only rate-limit errors from the analyzer are retried; any
    other failure records the photo as failed with no warnings.
    """

    def __init__(
        self,
        db: Session,
        storage,
        analyzer,
        limiter: Optional[RateLimiter] = None,
        retry: Optional[RetryExecutor] = None,
    ):
        self.db = db
        self.storage = storage
        self.analyzer = analyzer
        self.limiter = limiter or RateLimiter(min_interval_seconds=1.0, name="photo-validation")
        self.retry = retry or RetryExecutor(
            max_attempts=3,
            base_delay=1.0,
            retry_if=is_rate_limit_error,
            name="photo validation",
        )

    def _get_photo(self, photo_id: str) -> SourcePhoto:
        photo = self.db.query(SourcePhoto).filter(SourcePhoto.id == photo_id).first()
        if photo is None:
            raise PhotoNotFoundError(f"Photo {photo_id} not found")
        return photo

    @staticmethod
    def _stored_result(photo: SourcePhoto) -> ValidationResult:
        warnings = frozenset(ValidationWarning(w) for w in (photo.validation_warnings or []))
        return ValidationResult(
            photo_id=photo.id,
            is_valid=not warnings,
            warnings=warnings,
            status=photo.validation_status,
        )

    async def validate(self, photo_id: str, storage_key: Optional[str] = None) -> ValidationResult:
        """
        Validate one photo.

        Args:
            photo_id: SourcePhoto id
            storage_key: Override for the photo's stored key

        Returns:
            ValidationResult; is_valid is True iff no warnings were raised
        """
        photo = self._get_photo(photo_id)
        if photo.is_settled:
            logger.info(f"[Validation] {photo_id} already {photo.validation_status}, skipping")
            return self._stored_result(photo)

        key = storage_key or photo.storage_key
        logger.info(f"[Validation] Starting {photo_id} ({key})")

        try:
            image_bytes = await self.storage.download_bytes(key)
            raw = await self.retry.execute(
                lambda: self.limiter.call(self.analyzer.analyze, image_bytes, CRITERIA_PROMPT)
            )
            logger.debug(f"[Validation] {photo_id} response: {raw}")
            criteria = parse_criteria(raw)

        except ExhaustedRetriesError as e:
            return self._record_failure(photo, e.last_message)
        except Exception as e:
            return self._record_failure(photo, str(e))

        warnings = criteria.warnings()
        is_valid = not warnings
        photo.validation_status = ValidationStatus.VALIDATED if is_valid else ValidationStatus.FAILED
        photo.validation_warnings = sorted(w.value for w in warnings)
        photo.validated_at = utcnow()
        self.db.commit()

        logger.info(
            f"[Validation] {photo_id} {'valid' if is_valid else 'invalid'}"
            + (f": {', '.join(photo.validation_warnings)}" if warnings else "")
        )
        return ValidationResult(
            photo_id=photo_id,
            is_valid=is_valid,
            warnings=warnings,
            status=photo.validation_status,
            details=criteria,
        )

    def _record_failure(self, photo: SourcePhoto, message: str) -> ValidationResult:
        logger.error(f"[Validation] {photo.id} failed: {message}")
        photo.validation_status = ValidationStatus.FAILED
        photo.validation_warnings = []
        photo.validated_at = utcnow()
        self.db.commit()
        return ValidationResult(
            photo_id=photo.id,
            is_valid=False,
            status=ValidationStatus.FAILED,
            error=message,
        )

    async def validate_batch(self, photos: Iterable[SourcePhoto]) -> List[ValidationResult]:
        """Validate photos one after another so the rate limit holds."""
        photos = list(photos)
        logger.info(f"[Validation] Batch of {len(photos)} photo(s)")

        results = []
        for photo in photos:
            results.append(await self.validate(photo.id, photo.storage_key))

        valid = sum(1 for r in results if r.is_valid)
        logger.info(f"[Validation] Batch done: {valid} valid, {len(results) - valid} with warnings or errors")
        return results

    def bypass(self, owner_id: str, photo_ids: Iterable[str]) -> int:
        """
        Accept the owner's photos without validation.

        Warnings from an earlier analysis are cleared: a bypassed photo is
        accepted as it stands.

        Returns:
            Number of photos marked bypassed
        """
        photo_ids = list(photo_ids)
        if not photo_ids:
            return 0

        count = (
            self.db.query(SourcePhoto)
            .filter(SourcePhoto.owner_id == owner_id, SourcePhoto.id.in_(photo_ids))
            .update(
                {
                    SourcePhoto.validation_status: ValidationStatus.BYPASSED,
                    SourcePhoto.validation_warnings: [],
                    SourcePhoto.validated_at: utcnow(),
                },
                synchronize_session="fetch",
            )
        )
        self.db.commit()

        logger.info(f"[Validation] Bypassed {count} photo(s) for {owner_id}")
        return count


__all__ = [
    "CRITERIA_PROMPT",
    "ValidationWarning",
    "ValidationCriteria",
    "ValidationResult",
    "PhotoNotFoundError",
    "parse_criteria",
    "PhotoValidator",
]
