"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table and uses relationships where appropriate.

Ownership differs per relationship (see `ownership.py`): ratings and
progress records are owned by the student account and cascade with it,
while messages are only referenced and survive changes to the account.
"""

from typing import Optional
from sqlmodel import SQLModel, Field, Relationship
from datetime import datetime, date, timezone
from typing import List


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccountRole(SQLModel, table=True):
    """Join table between accounts and roles."""
    __tablename__ = "user_roles"
    account_id: Optional[int] = Field(default=None, foreign_key="user_account.id", primary_key=True)
    role_id: Optional[int] = Field(default=None, foreign_key="role.id", primary_key=True)


class AccountVerifier(SQLModel, table=True):
    """Directed edge: `verifier_id` verified `account_id`.

    There is deliberately no relationship attribute on `Account` for this
    table, so an account never exposes who verified it.
    """
    __tablename__ = "users_verifiers"
    account_id: Optional[int] = Field(default=None, foreign_key="user_account.id", primary_key=True)
    verifier_id: Optional[int] = Field(default=None, foreign_key="user_account.id", primary_key=True)


class CourseParticipant(SQLModel, table=True):
    __tablename__ = "course_participants"
    account_id: Optional[int] = Field(default=None, foreign_key="user_account.id", primary_key=True)
    course_id: Optional[int] = Field(default=None, foreign_key="course.id", primary_key=True)


class CourseCategoryLink(SQLModel, table=True):
    __tablename__ = "course_categories"
    course_id: Optional[int] = Field(default=None, foreign_key="course.id", primary_key=True)
    category_id: Optional[int] = Field(default=None, foreign_key="coursecategory.id", primary_key=True)


class MeetingParticipant(SQLModel, table=True):
    __tablename__ = "users_meetings"
    account_id: Optional[int] = Field(default=None, foreign_key="user_account.id", primary_key=True)
    meeting_id: Optional[int] = Field(default=None, foreign_key="meeting.id", primary_key=True)


class ChatParticipant(SQLModel, table=True):
    __tablename__ = "chat_participants"
    chat_id: Optional[int] = Field(default=None, foreign_key="chat.id", primary_key=True)
    account_id: Optional[int] = Field(default=None, foreign_key="user_account.id", primary_key=True)


class Role(SQLModel, table=True):
    """A named capability tag such as STUDENT, TUTOR, ADMIN or VERIFIER."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, nullable=False, unique=True)
    accounts: List['Account'] = Relationship(back_populates='roles', link_model=AccountRole)


class University(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    university_name: str = Field(index=True, unique=True)
    street: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    affiliations: List['Affiliation'] = Relationship(back_populates='university')


class Affiliation(SQLModel, table=True):
    """Institutional association of one or more accounts."""
    id: Optional[int] = Field(default=None, primary_key=True)
    affiliation_type: str
    university_id: Optional[int] = Field(default=None, foreign_key='university.id')
    university: Optional[University] = Relationship(back_populates='affiliations')
    accounts: List['Account'] = Relationship(back_populates='affiliation')


class Account(SQLModel, table=True):
    """A registered user account.

    Fields:
    - `email`: unique login key
    - `password_hash`: hashed password string (never store plaintext)
    - `is_verified`/`verified_on`: always set together by a verifier
    """
    __tablename__ = "user_account"
    id: Optional[int] = Field(default=None, primary_key=True)
    first_name: str
    last_name: str
    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    is_verified: bool = False
    verified_on: Optional[datetime] = None
    enabled: bool = True
    affiliation_id: Optional[int] = Field(default=None, foreign_key='affiliation.id')

    roles: List[Role] = Relationship(back_populates='accounts', link_model=AccountRole)
    affiliation: Optional[Affiliation] = Relationship(back_populates='accounts')
    courses: List['Course'] = Relationship(back_populates='participants', link_model=CourseParticipant)
    meetings: List['Meeting'] = Relationship(back_populates='participants', link_model=MeetingParticipant)
    given_tutor_ratings: List['TutorRating'] = Relationship(
        back_populates='student',
        sa_relationship_kwargs={"foreign_keys": "[TutorRating.student_id]", "cascade": "all, delete-orphan"},
    )
    received_tutor_ratings: List['TutorRating'] = Relationship(
        back_populates='tutor',
        sa_relationship_kwargs={"foreign_keys": "[TutorRating.tutor_id]", "cascade": "all, delete-orphan"},
    )
    given_course_ratings: List['CourseRating'] = Relationship(
        back_populates='student', sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )
    progress_records: List['Progress'] = Relationship(
        back_populates='student', sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )
    # read-only views: modifying them never removes or re-parents a message
    messages_sent: List['Message'] = Relationship(
        sa_relationship_kwargs={"foreign_keys": "[Message.sender_id]", "viewonly": True}
    )
    messages_received: List['Message'] = Relationship(
        sa_relationship_kwargs={"foreign_keys": "[Message.receiver_id]", "viewonly": True}
    )


class CourseCategory(SQLModel, table=True):
    """A course category such as "Math" or "Computer Science"."""
    id: Optional[int] = Field(default=None, primary_key=True)
    category_name: str = Field(index=True, unique=True)
    created_on: datetime = Field(default_factory=_utcnow)
    courses: List['Course'] = Relationship(back_populates='categories', link_model=CourseCategoryLink)


class Course(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    course_name: str = Field(index=True)
    tutor_id: Optional[int] = Field(default=None, foreign_key='user_account.id')
    description_short: Optional[str] = None
    description_long: Optional[str] = None
    created_on: datetime = Field(default_factory=_utcnow)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    categories: List[CourseCategory] = Relationship(back_populates='courses', link_model=CourseCategoryLink)
    participants: List[Account] = Relationship(back_populates='courses', link_model=CourseParticipant)


class Chat(SQLModel, table=True):
    """A conversation container holding zero or more messages."""
    id: Optional[int] = Field(default=None, primary_key=True)
    chat_name: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    participants: List[Account] = Relationship(link_model=ChatParticipant)
    messages: List['Message'] = Relationship(back_populates='chat')


class Message(SQLModel, table=True):
    """A persisted message from `sender_id` to `receiver_id`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    sender_id: int = Field(foreign_key='user_account.id', index=True)
    receiver_id: int = Field(foreign_key='user_account.id', index=True)
    chat_id: Optional[int] = Field(default=None, foreign_key='chat.id', index=True)
    content: str
    timestamp: datetime = Field(default_factory=_utcnow, index=True)
    is_read: bool = False
    chat: Optional[Chat] = Relationship(back_populates='messages')


class TutorRating(SQLModel, table=True):
    """A rating given by a student to a tutor."""
    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: Optional[int] = Field(default=None, foreign_key='user_account.id')
    tutor_id: Optional[int] = Field(default=None, foreign_key='user_account.id')
    points: int
    review: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    student: Optional[Account] = Relationship(
        back_populates='given_tutor_ratings', sa_relationship_kwargs={"foreign_keys": "[TutorRating.student_id]"}
    )
    tutor: Optional[Account] = Relationship(
        back_populates='received_tutor_ratings', sa_relationship_kwargs={"foreign_keys": "[TutorRating.tutor_id]"}
    )


class CourseRating(SQLModel, table=True):
    """A rating given by a student to a course."""
    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: Optional[int] = Field(default=None, foreign_key='user_account.id')
    course_id: int = Field(foreign_key='course.id')
    points: int
    review: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    student: Optional[Account] = Relationship(back_populates='given_course_ratings')


class Meeting(SQLModel, table=True):
    """A scheduled session with a bidirectional participant set."""
    id: Optional[int] = Field(default=None, primary_key=True)
    tutor_id: Optional[int] = Field(default=None, foreign_key='user_account.id')
    course_id: Optional[int] = Field(default=None, foreign_key='course.id')
    meeting_date: datetime
    duration: int = 60
    meeting_type: Optional[str] = None
    room_num: Optional[str] = None
    meeting_link: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    participants: List[Account] = Relationship(back_populates='meetings', link_model=MeetingParticipant)


class Progress(SQLModel, table=True):
    """A per-student score record for a course."""
    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: Optional[int] = Field(default=None, foreign_key='user_account.id')
    course_id: int = Field(foreign_key='course.id')
    points: float = 0.0
    last_updated: datetime = Field(default_factory=_utcnow)
    student: Optional[Account] = Relationship(back_populates='progress_records')
