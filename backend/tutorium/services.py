"""Business logic services used by HTTP and WebSocket controllers.

This module holds small service classes that coordinate repositories
and domain rules. Services are intentionally thin: they perform
validation before any mutation, persist aggregates via repositories and
return public projections (see `schemas`). Failures are raised as the
exceptions defined in `exceptions`.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session
from . import models, repositories, ownership
from .config import settings
from .exceptions import (
    AccountNotFoundError,
    ChatNotFoundError,
    DuplicateCategoryError,
    DuplicateEmailError,
    InvalidInputError,
    RoleNotFoundError,
    StorageError,
    UnknownParticipantError,
)
from .schemas import (
    AccountCreate,
    AccountOut,
    AffiliationOut,
    ChatCreate,
    ChatOut,
    CourseCategoryIn,
    CourseCategoryOut,
    MessageDraft,
    MessageOut,
)

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
VERIFIER_ROLES = ("ADMIN", "VERIFIER")

logger = logging.getLogger("tutorium.services")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops the offset on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def account_projection(account: models.Account) -> AccountOut:
    """Build the public view of an account (no email, hash or verifiers)."""
    affiliation = None
    if account.affiliation is not None:
        affiliation = AffiliationOut(
            id=account.affiliation.id,
            affiliation_type=account.affiliation.affiliation_type,
            university_name=account.affiliation.university.university_name if account.affiliation.university else None,
        )
    return AccountOut(
        id=account.id,
        first_name=account.first_name,
        last_name=account.last_name,
        description=account.description,
        roles=sorted(r.name for r in account.roles),
        affiliation=affiliation,
        is_verified=account.is_verified,
        verified_on=_as_utc(account.verified_on),
        enabled=account.enabled,
        created_at=_as_utc(account.created_at),
    )


def message_projection(message: models.Message) -> MessageOut:
    return MessageOut(
        id=message.id,
        sender_id=message.sender_id,
        receiver_id=message.receiver_id,
        chat_id=message.chat_id,
        content=message.content,
        timestamp=_as_utc(message.timestamp),
        is_read=message.is_read,
    )


def chat_projection(chat: models.Chat) -> ChatOut:
    return ChatOut(
        id=chat.id,
        chat_name=chat.chat_name,
        participant_ids=sorted(a.id for a in chat.participants),
        created_at=_as_utc(chat.created_at),
    )


class AccountService:
    """Account registration, lookup, role and verification operations."""
    def __init__(self, session: Session):
        self.session = session
        self.account_repo = repositories.AccountRepository(session)
        self.role_repo = repositories.RoleRepository(session)

    def register(self, payload: AccountCreate) -> AccountOut:
        """Create a new account with a hashed password and its roles.

        Raises `DuplicateEmailError` if the email is taken and
        `InvalidInputError` for unknown roles or affiliations.
        """
        email = payload.email.strip().lower()
        if self.account_repo.get_by_email(email):
            raise DuplicateEmailError(email)
        roles = []
        for name in dict.fromkeys(r.strip().upper() for r in payload.roles):
            role = self.role_repo.get_by_name(name)
            if role is None:
                raise InvalidInputError(f"unknown role: {name}")
            roles.append(role)
        affiliation = None
        if payload.affiliation_id is not None:
            affiliation = self.session.get(models.Affiliation, payload.affiliation_id)
            if affiliation is None:
                raise InvalidInputError(f"unknown affiliation: {payload.affiliation_id}")
        account = models.Account(
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=email,
            password_hash=PWD_CTX.hash(payload.password),
            description=payload.description,
            roles=roles,
            affiliation=affiliation,
        )
        try:
            account = self.account_repo.create(account)
        except StorageError as exc:
            # lost a race against a concurrent registration
            if isinstance(exc.__cause__, IntegrityError):
                raise DuplicateEmailError(email) from exc
            raise
        logger.info("account_registered id=%s roles=%s", account.id, [r.name for r in roles])
        return account_projection(account)

    def _get(self, account_id: int) -> models.Account:
        account = self.account_repo.get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def find_account_by_id(self, account_id: int) -> AccountOut:
        """Return the public projection or raise `AccountNotFoundError`."""
        return account_projection(self._get(account_id))

    def find_tutor_by_id(self, tutor_id: int) -> AccountOut:
        """Like `find_account_by_id` but the account must hold the TUTOR role."""
        account = self._get(tutor_id)
        if not any(r.name == "TUTOR" for r in account.roles):
            raise AccountNotFoundError(tutor_id)
        return account_projection(account)

    def count_by_role(self, role_name: str) -> int:
        if not role_name or not role_name.strip():
            return 0
        return self.account_repo.count_by_role(role_name.strip().upper())

    def student_count(self) -> int:
        return self.count_by_role("STUDENT")

    def tutor_count(self) -> int:
        return self.count_by_role("TUTOR")

    def grant_role(self, account_id: int, role_name: str) -> AccountOut:
        """Add a role to the account; existing roles are kept."""
        account = self._get(account_id)
        name = role_name.strip().upper()
        role = self.role_repo.get_by_name(name)
        if role is None:
            raise RoleNotFoundError(name)
        if role not in account.roles:
            account.roles.append(role)
            account = self.account_repo.save(account)
        return account_projection(account)

    def verify_account(self, account_id: int, verifier_id: int) -> AccountOut:
        """Mark `account_id` as verified by `verifier_id`.

        The verifier must hold ADMIN or VERIFIER and cannot verify
        itself. The first verification sets `is_verified` and
        `verified_on` together; later ones only add a verifier edge.
        """
        if account_id == verifier_id:
            raise InvalidInputError("an account cannot verify itself")
        account = self._get(account_id)
        verifier = self._get(verifier_id)
        if not any(r.name in VERIFIER_ROLES for r in verifier.roles):
            raise InvalidInputError(f"account {verifier_id} is not allowed to verify accounts")
        if not account.is_verified:
            account.is_verified = True
            account.verified_on = datetime.now(timezone.utc)
        self.account_repo.add_verifier(account.id, verifier.id)
        account = self.account_repo.save(account)
        logger.info("account_verified id=%s", account.id)
        return account_projection(account)

    def remove_account(self, account_id: int) -> str:
        """Remove an account, honouring each relationship's ownership policy.

        Owned ratings and progress records are deleted. If the account
        sent or received any message, or is the tutor of a course or
        meeting, it is archived (disabled) so those rows keep valid
        references; otherwise the row is deleted.
        Returns "archived" or "deleted".
        """
        account = self._get(account_id)
        removed_ratings = ownership.cascade_owned_ratings(self.session, account)
        removed_progress = ownership.cascade_owned_progress(self.session, account)
        retained = ownership.count_retained_messages(self.session, account.id)
        tutoring = ownership.count_retained_tutoring(self.session, account.id)
        if retained or tutoring:
            account.enabled = False
            self.account_repo.save(account)
            outcome = "archived"
        else:
            self.account_repo.delete(account)
            outcome = "deleted"
        logger.info(
            "account_removed id=%s outcome=%s ratings=%s progress=%s messages_retained=%s tutoring_retained=%s",
            account_id, outcome, removed_ratings, removed_progress, retained, tutoring,
        )
        return outcome


class MessageService:
    """Persist chat messages; shared by the REST and WebSocket adapters."""
    def __init__(self, session: Session):
        self.session = session
        self.message_repo = repositories.MessageRepository(session)
        self.account_repo = repositories.AccountRepository(session)
        self.chat_repo = repositories.ChatRepository(session)

    def save_message(self, draft: MessageDraft) -> MessageOut:
        """Validate, persist and project a message draft.

        Validation (content, sender, receiver, chat) happens before
        anything is written. The server assigns the timestamp when the
        draft has none. The returned projection is exactly what callers
        send back or publish. Any database error, including one raised
        while validating, surfaces as `StorageError`.
        """
        if not draft.content or not draft.content.strip():
            raise InvalidInputError("message content must not be empty")
        if len(draft.content) > settings.MAX_MESSAGE_LENGTH:
            raise InvalidInputError(f"message content exceeds {settings.MAX_MESSAGE_LENGTH} characters")
        with repositories.storage_errors(self.session, "save message"):
            if not self.account_repo.exists(draft.sender_id):
                raise UnknownParticipantError(draft.sender_id, "sender")
            if not self.account_repo.exists(draft.receiver_id):
                raise UnknownParticipantError(draft.receiver_id, "receiver")
            if draft.chat_id is not None and self.chat_repo.get(draft.chat_id) is None:
                raise ChatNotFoundError(draft.chat_id)
            message = models.Message(
                sender_id=draft.sender_id,
                receiver_id=draft.receiver_id,
                chat_id=draft.chat_id,
                content=draft.content,
                timestamp=_as_utc(draft.timestamp) or datetime.now(timezone.utc),
            )
            message = self.message_repo.create(message)
        logger.debug("message_saved id=%s chat_id=%s", message.id, message.chat_id)
        return message_projection(message)

    def list_chat_messages(self, chat_id: int) -> List[MessageOut]:
        """Return the chat's messages in (timestamp, id) order."""
        if self.chat_repo.get(chat_id) is None:
            raise ChatNotFoundError(chat_id)
        return [message_projection(m) for m in self.message_repo.list_for_chat(chat_id)]


class ChatService:
    """Create and delete chat sessions."""
    def __init__(self, session: Session):
        self.session = session
        self.chat_repo = repositories.ChatRepository(session)
        self.account_repo = repositories.AccountRepository(session)

    def create_chat(self, payload: ChatCreate) -> int:
        """Create a chat for a non-empty set of existing accounts; return its id."""
        participant_ids = list(dict.fromkeys(payload.participant_ids))
        if not participant_ids:
            raise InvalidInputError("a chat needs at least one participant")
        participants = []
        for account_id in participant_ids:
            account = self.account_repo.get(account_id)
            if account is None:
                raise UnknownParticipantError(account_id)
            participants.append(account)
        chat = self.chat_repo.create(models.Chat(chat_name=payload.chat_name, participants=participants))
        logger.info("chat_created id=%s participants=%s", chat.id, participant_ids)
        return chat.id

    def get_chat(self, chat_id: int) -> ChatOut:
        chat = self.chat_repo.get(chat_id)
        if chat is None:
            raise ChatNotFoundError(chat_id)
        return chat_projection(chat)

    def delete_chat(self, chat_id: int) -> None:
        """Delete a chat; its messages are kept with `chat_id` cleared."""
        chat = self.chat_repo.get(chat_id)
        if chat is None:
            raise ChatNotFoundError(chat_id)
        detached = ownership.detach_chat_messages(self.session, chat)
        self.chat_repo.delete(chat)
        logger.info("chat_deleted id=%s messages_retained=%s", chat_id, detached)


class CategoryService:
    """Course category creation and listing."""
    def __init__(self, session: Session):
        self.session = session
        self.category_repo = repositories.CategoryRepository(session)

    def create_category(self, payload: CourseCategoryIn) -> CourseCategoryOut:
        name = payload.category_name.strip()
        if not name:
            raise InvalidInputError("category name must not be empty")
        if self.category_repo.get_by_name(name):
            raise DuplicateCategoryError(name)
        category = self.category_repo.create(
            models.CourseCategory(category_name=name, created_on=datetime.now(timezone.utc))
        )
        return CourseCategoryOut(id=category.id, category_name=category.category_name, created_on=_as_utc(category.created_on))

    def list_categories(self) -> List[CourseCategoryOut]:
        return [
            CourseCategoryOut(id=c.id, category_name=c.category_name, created_on=_as_utc(c.created_on))
            for c in self.category_repo.list_all()
        ]
