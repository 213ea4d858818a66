# Database models package
from dreamboat.models.payment import PaymentCredit
from dreamboat.models.generation import GenerationJob, GenerationStatus
from dreamboat.models.result import GeneratedResult
from dreamboat.models.photo import SourcePhoto, ValidationStatus

__all__ = [
    "PaymentCredit",
    "GenerationJob",
    "GenerationStatus",
    "GeneratedResult",
    "SourcePhoto",
    "ValidationStatus"
]
