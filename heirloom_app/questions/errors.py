"""Errors raised by the question engine services.

The API layer maps these onto HTTP responses; services never build responses
themselves.
"""

from django.core.exceptions import ValidationError


class QuestionEngineError(Exception):
    """Base class for question engine failures."""


class InvalidToken(QuestionEngineError):
    """Token is unknown, malformed or deactivated.

    Surfaced to clients only as a generic "link not found".
    """


class EditWindowClosed(QuestionEngineError):
    """An existing answer can no longer be changed.

    Carries the stored answer so callers can show it read-only.
    """

    def __init__(self, answer, message="This answer can no longer be edited."):
        super().__init__(message)
        self.answer = answer


class DuplicateRecipient(QuestionEngineError):
    """Another writer already holds a live token for this set and email.

    Internal only: the dispatcher turns it into a reuse.
    """

    def __init__(self, question_set_id, email_normalized):
        super().__init__(
            f"Live recipient already exists for set {question_set_id}"
        )
        self.question_set_id = question_set_id
        self.email_normalized = email_normalized


class ClaimConflict(QuestionEngineError):
    """The recipient already belongs to a different account."""


class ReminderNotAllowed(QuestionEngineError):
    """A manual reminder cannot be sent right now."""


class RecipientValidationError(ValidationError):
    """A recipient batch was rejected.

    ``row_errors`` maps the zero-based row index to its list of messages.
    """

    def __init__(self, row_errors: dict[int, list[str]]):
        self.row_errors = row_errors
        super().__init__(
            {
                f"recipients[{index}]": messages
                for index, messages in sorted(row_errors.items())
            }
        )


class ReminderRateLimited(ReminderNotAllowed):
    """The asker has sent too many manual reminders recently."""
