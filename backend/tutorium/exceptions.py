"""Domain exception classes for the Tutorium backend.

Services raise these; HTTP controllers translate them into status codes
(404 for missing entities, 400 for invalid input, 409 for conflicts and
500 for storage failures).
"""


class TutoriumError(Exception):
    """Base exception for all Tutorium errors."""

    pass


class NotFoundError(TutoriumError):
    """Raised when a referenced entity does not exist."""

    entity = "entity"

    def __init__(self, entity_id):
        """Initialize the exception.

        Args:
            entity_id: The identifier that could not be resolved.
        """
        self.entity_id = entity_id
        super().__init__(f"{self.entity} '{entity_id}' not found")


class AccountNotFoundError(NotFoundError):
    entity = "account"


class ChatNotFoundError(NotFoundError):
    entity = "chat"


class RoleNotFoundError(NotFoundError):
    entity = "role"


class InvalidInputError(TutoriumError, ValueError):
    """Raised when a request payload violates a constraint."""

    pass


class UnknownParticipantError(InvalidInputError):
    """Raised when a message or chat references an account that does not exist."""

    def __init__(self, account_id: int, field: str = "participant"):
        self.account_id = account_id
        self.field = field
        super().__init__(f"unknown {field}: {account_id}")


class ConflictError(InvalidInputError):
    """Raised when a write would violate a uniqueness constraint."""

    pass


class DuplicateEmailError(ConflictError):
    def __init__(self, email: str):
        self.email = email
        super().__init__(f"email already registered: {email}")


class DuplicateCategoryError(ConflictError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"category already exists: {name}")


class StorageError(TutoriumError):
    """Raised when the persistence layer could not complete an operation."""

    pass
