"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (accounts,
roles, chats, messages, categories). Repositories return SQLModel
objects and perform commits/refreshes where appropriate. A failed commit
is rolled back and re-raised as `StorageError`.
"""

import logging
from contextlib import contextmanager
from typing import List, Optional, Set
from sqlmodel import Session, select
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from . import models
from .exceptions import StorageError

logger = logging.getLogger("tutorium.repositories")


@contextmanager
def storage_errors(session: Session, action: str):
    """Roll back and re-raise any `SQLAlchemyError` in the block as `StorageError`."""
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("%s failed", action)
        raise StorageError(f"could not {action}: {exc.__class__.__name__}") from exc


def commit(session: Session) -> None:
    """Commit the current transaction, translating driver errors."""
    with storage_errors(session, "persist changes"):
        session.commit()


class AccountRepository:
    """CRUD operations for `Account` objects and their verifier edges."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, account: models.Account) -> models.Account:
        """Persist a new account and return the managed instance."""
        self.session.add(account)
        commit(self.session)
        self.session.refresh(account)
        return account

    def save(self, account: models.Account) -> models.Account:
        self.session.add(account)
        commit(self.session)
        self.session.refresh(account)
        return account

    def get(self, account_id: int) -> Optional[models.Account]:
        """Get an `Account` by primary key or `None` if not found."""
        return self.session.get(models.Account, account_id)

    def get_by_email(self, email: str) -> Optional[models.Account]:
        stmt = select(models.Account).where(models.Account.email == email)
        return self.session.exec(stmt).first()

    def exists(self, account_id: int) -> bool:
        stmt = select(models.Account.id).where(models.Account.id == account_id)
        return self.session.exec(stmt).first() is not None

    def count_by_role(self, role_name: str) -> int:
        """Count distinct accounts holding `role_name`; unknown roles count 0."""
        stmt = (
            select(func.count(func.distinct(models.AccountRole.account_id)))
            .select_from(models.AccountRole)
            .join(models.Role, models.Role.id == models.AccountRole.role_id)
            .where(models.Role.name == role_name)
        )
        return self.session.exec(stmt).one()

    def add_verifier(self, account_id: int, verifier_id: int) -> None:
        """Record that `verifier_id` verified `account_id` (idempotent)."""
        edge = self.session.get(models.AccountVerifier, (account_id, verifier_id))
        if edge is None:
            self.session.add(models.AccountVerifier(account_id=account_id, verifier_id=verifier_id))

    def verifier_ids(self, account_id: int) -> Set[int]:
        """Return the ids of accounts that verified `account_id`.

        Only this direction is queryable; there is no lookup of the
        accounts a verifier has verified.
        """
        stmt = select(models.AccountVerifier.verifier_id).where(models.AccountVerifier.account_id == account_id)
        return set(self.session.exec(stmt).all())

    def delete(self, account: models.Account) -> None:
        """Hard-delete an account together with its edge rows."""
        for edge in self.session.exec(
            select(models.AccountVerifier).where(
                or_(models.AccountVerifier.account_id == account.id, models.AccountVerifier.verifier_id == account.id)
            )
        ).all():
            self.session.delete(edge)
        for link in self.session.exec(
            select(models.ChatParticipant).where(models.ChatParticipant.account_id == account.id)
        ).all():
            self.session.delete(link)
        self.session.delete(account)
        commit(self.session)


class RoleRepository:
    """Lookup helpers for `Role` records."""
    def __init__(self, session: Session):
        self.session = session

    def get_by_name(self, name: str) -> Optional[models.Role]:
        stmt = select(models.Role).where(models.Role.name == name)
        return self.session.exec(stmt).first()


class ChatRepository:
    """Persist and remove `Chat` rows."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, chat: models.Chat) -> models.Chat:
        self.session.add(chat)
        commit(self.session)
        self.session.refresh(chat)
        return chat

    def get(self, chat_id: int) -> Optional[models.Chat]:
        return self.session.get(models.Chat, chat_id)

    def delete(self, chat: models.Chat) -> None:
        self.session.delete(chat)
        commit(self.session)


class MessageRepository:
    """Create-only store for `Message` rows; messages are never edited."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, message: models.Message) -> models.Message:
        """Persist a new message and return it with generated id."""
        self.session.add(message)
        commit(self.session)
        self.session.refresh(message)
        return message

    def get(self, message_id: int) -> Optional[models.Message]:
        return self.session.get(models.Message, message_id)

    def list_for_chat(self, chat_id: int) -> List[models.Message]:
        """Return the chat's messages ordered by timestamp then id."""
        stmt = (
            select(models.Message)
            .where(models.Message.chat_id == chat_id)
            .order_by(models.Message.timestamp, models.Message.id)
        )
        return self.session.exec(stmt).all()


class CategoryRepository:
    """CRUD operations for `CourseCategory` records."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, category: models.CourseCategory) -> models.CourseCategory:
        self.session.add(category)
        commit(self.session)
        self.session.refresh(category)
        return category

    def get_by_name(self, name: str) -> Optional[models.CourseCategory]:
        stmt = select(models.CourseCategory).where(models.CourseCategory.category_name == name)
        return self.session.exec(stmt).first()

    def list_all(self) -> List[models.CourseCategory]:
        stmt = select(models.CourseCategory).order_by(models.CourseCategory.category_name)
        return self.session.exec(stmt).all()
