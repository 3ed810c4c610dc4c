"""Deletion policies for the relationships of accounts and chats.

Each relationship is tagged either OWNED (children are deleted with the
owner and when detached from it) or RETAINED (children are only
referenced and outlive the owner). The functions below apply one policy
each; they flush but never commit, so callers decide the transaction
boundary.
"""

from enum import Enum
from sqlmodel import Session, select
from sqlalchemy import or_, func
from . import models


class Ownership(str, Enum):
    OWNED = "owned"
    RETAINED = "retained"


RELATIONSHIP_POLICIES = {
    "account.given_tutor_ratings": Ownership.OWNED,
    "account.received_tutor_ratings": Ownership.OWNED,
    "account.given_course_ratings": Ownership.OWNED,
    "account.progress_records": Ownership.OWNED,
    "account.messages_sent": Ownership.RETAINED,
    "account.messages_received": Ownership.RETAINED,
    "chat.messages": Ownership.RETAINED,
    # courses and meetings keep pointing at the tutor who ran them
    "account.taught_courses": Ownership.RETAINED,
    "account.hosted_meetings": Ownership.RETAINED,
}


def policy_for(relationship: str) -> Ownership:
    """Return the policy registered for `relationship` (e.g. "chat.messages")."""
    try:
        return RELATIONSHIP_POLICIES[relationship]
    except KeyError:
        raise KeyError(f"no ownership policy registered for {relationship!r}") from None


def cascade_owned_ratings(session: Session, account: models.Account) -> int:
    """Delete every tutor/course rating given or received by `account`.

    Returns the number of ratings removed.
    """
    ratings = list(account.given_tutor_ratings) + list(account.received_tutor_ratings) + list(account.given_course_ratings)
    for r in ratings:
        session.delete(r)
    session.flush()
    session.expire(account, ["given_tutor_ratings", "received_tutor_ratings", "given_course_ratings"])
    return len(ratings)


def cascade_owned_progress(session: Session, account: models.Account) -> int:
    """Delete the progress records owned by `account`."""
    records = list(account.progress_records)
    for p in records:
        session.delete(p)
    session.flush()
    session.expire(account, ["progress_records"])
    return len(records)


def count_retained_messages(session: Session, account_id: int) -> int:
    """Count messages sent or received by the account.

    These rows are never touched when the account is removed; a non-zero
    count means the account must be archived instead of deleted.
    """
    stmt = select(func.count()).select_from(models.Message).where(
        or_(models.Message.sender_id == account_id, models.Message.receiver_id == account_id)
    )
    return session.exec(stmt).one()


def count_retained_tutoring(session: Session, account_id: int) -> int:
    """Count courses and meetings that name the account as their tutor."""
    courses = session.exec(
        select(func.count()).select_from(models.Course).where(models.Course.tutor_id == account_id)
    ).one()
    meetings = session.exec(
        select(func.count()).select_from(models.Meeting).where(models.Meeting.tutor_id == account_id)
    ).one()
    return courses + meetings


def detach_chat_messages(session: Session, chat: models.Chat) -> int:
    """Keep the chat's messages but clear their `chat_id` before the chat goes away."""
    messages = session.exec(select(models.Message).where(models.Message.chat_id == chat.id)).all()
    for m in messages:
        m.chat = None
        m.chat_id = None
        session.add(m)
    session.flush()
    session.expire(chat, ["messages"])
    return len(messages)
