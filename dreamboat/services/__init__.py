# Services package - business logic and external integrations
from dreamboat.services.payments import PaymentGate, PaymentLedger
from dreamboat.services.tracker import GenerationTracker
from dreamboat.services.profile import ProfileSelector
from dreamboat.services.photo_validator import PhotoValidator
from dreamboat.services.gemini_image import GeminiImageService
from dreamboat.services.storage import StorageService

__all__ = [
    "PaymentGate",
    "PaymentLedger",
    "GenerationTracker",
    "ProfileSelector",
    "PhotoValidator",
    "GeminiImageService",
    "StorageService",
]
