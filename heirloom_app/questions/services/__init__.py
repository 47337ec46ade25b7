"""Service layer for the question request engine."""

from .answer_service import AnswerService, AnswerSessionView, QuestionView
from .catalog_service import CatalogService
from .claim_service import ClaimResult, ClaimService
from .dispatch_service import DispatchedRecipient, DispatchResult, DispatchService
from .media_service import MediaService, address_key_for
from .reminder_service import ReminderRunResult, ReminderService
from .reporting_service import (
    RecipientStatus,
    RequestGroup,
    SetSummary,
    get_set_detail,
    get_unified_sets,
)

__all__ = [
    "AnswerService",
    "AnswerSessionView",
    "CatalogService",
    "ClaimResult",
    "ClaimService",
    "DispatchResult",
    "DispatchService",
    "DispatchedRecipient",
    "MediaService",
    "QuestionView",
    "RecipientStatus",
    "ReminderRunResult",
    "ReminderService",
    "RequestGroup",
    "SetSummary",
    "address_key_for",
    "get_set_detail",
    "get_unified_sets",
]
