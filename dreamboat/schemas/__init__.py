# Pydantic schemas package
from dreamboat.schemas.generate import (
    GenerateRequest, GenerateResponse, QueuedGenerateResponse, TaskOutcomeResponse
)
from dreamboat.schemas.job import JobResponse, QueueJobStatusResponse
from dreamboat.schemas.photo import (
    PhotoCreate, PhotoResponse, ValidationResponse, BypassRequest, BypassResponse
)
from dreamboat.schemas.profile import ResultResponse, SelectionItem, SelectionsUpdate, ToggleRequest
from dreamboat.schemas.payment import PaymentCreditResponse, AccessResponse

__all__ = [
    "GenerateRequest", "GenerateResponse", "QueuedGenerateResponse", "TaskOutcomeResponse",
    "JobResponse", "QueueJobStatusResponse",
    "PhotoCreate", "PhotoResponse", "ValidationResponse", "BypassRequest", "BypassResponse",
    "ResultResponse", "SelectionItem", "SelectionsUpdate", "ToggleRequest",
    "PaymentCreditResponse", "AccessResponse",
]
