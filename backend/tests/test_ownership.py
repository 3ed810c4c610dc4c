from datetime import datetime, timezone

import pytest
from sqlmodel import select

from tutorium import models, ownership
from tutorium.ownership import Ownership
from tutorium.schemas import MessageDraft
from tutorium.services import AccountService, MessageService


def _course(session, tutor_id):
    course = models.Course(course_name='Linear Algebra', tutor_id=tutor_id)
    session.add(course)
    session.commit()
    session.refresh(course)
    return course


def test_policy_table():
    assert ownership.policy_for('account.given_tutor_ratings') is Ownership.OWNED
    assert ownership.policy_for('account.progress_records') is Ownership.OWNED
    assert ownership.policy_for('account.messages_sent') is Ownership.RETAINED
    assert ownership.policy_for('chat.messages') is Ownership.RETAINED
    assert ownership.policy_for('account.received_tutor_ratings') is Ownership.OWNED
    assert ownership.policy_for('account.taught_courses') is Ownership.RETAINED
    assert ownership.policy_for('account.hosted_meetings') is Ownership.RETAINED
    with pytest.raises(KeyError):
        ownership.policy_for('account.friends')


def test_rating_is_orphan_removed(session, make_account):
    s = make_account('s@example.org')
    t = make_account('t@example.org', roles=('TUTOR',))
    student = session.get(models.Account, s.id)
    tutor = session.get(models.Account, t.id)
    rating = models.TutorRating(student=student, tutor=tutor, points=4, review='clear explanations')
    session.add(rating)
    session.commit()
    rating_id = rating.id

    student.given_tutor_ratings.remove(rating)
    session.commit()
    assert session.get(models.TutorRating, rating_id) is None


def test_rating_removed_from_tutor_side_is_deleted(session, make_account):
    s = make_account('s@example.org')
    t = make_account('t@example.org', roles=('TUTOR',))
    student = session.get(models.Account, s.id)
    tutor = session.get(models.Account, t.id)
    rating = models.TutorRating(student=student, tutor=tutor, points=2)
    session.add(rating)
    session.commit()
    rating_id = rating.id

    tutor.received_tutor_ratings.remove(rating)
    session.commit()
    assert session.get(models.TutorRating, rating_id) is None


def test_cascade_owned_ratings_and_progress(session, make_account):
    s = make_account('s@example.org')
    t = make_account('t@example.org', roles=('TUTOR',))
    student = session.get(models.Account, s.id)
    course = _course(session, t.id)
    session.add(models.TutorRating(student=student, tutor=session.get(models.Account, t.id), points=5))
    session.add(models.CourseRating(student=student, course_id=course.id, points=3))
    session.add(models.Progress(student=student, course_id=course.id, points=42.5))
    session.commit()

    assert ownership.cascade_owned_ratings(session, student) == 2
    assert ownership.cascade_owned_progress(session, student) == 1
    session.commit()
    assert session.exec(select(models.TutorRating)).all() == []
    assert session.exec(select(models.CourseRating)).all() == []
    assert session.exec(select(models.Progress)).all() == []


def test_remove_account_without_messages_deletes_it(client, session, make_account):
    s = make_account('gone@example.org')
    t = make_account('t@example.org', roles=('TUTOR',))
    student = session.get(models.Account, s.id)
    session.add(models.TutorRating(student=student, tutor=session.get(models.Account, t.id), points=2))
    session.commit()
    session.close()

    r = client.delete(f'/user/{s.id}')
    assert r.status_code == 200
    assert r.json() == {'status': 'deleted'}
    assert client.get(f'/user/{s.id}').status_code == 404
    assert session.exec(select(models.TutorRating)).all() == []
    assert client.delete(f'/user/{s.id}').status_code == 404


def test_remove_account_with_messages_archives_it(session, make_account):
    s = make_account('talker@example.org')
    other = make_account('o@example.org')
    msg = MessageService(session).save_message(MessageDraft(sender_id=s.id, receiver_id=other.id, content='archived'))
    course = _course(session, other.id)
    session.add(models.Progress(student=session.get(models.Account, s.id), course_id=course.id, points=1))
    session.commit()

    assert AccountService(session).remove_account(s.id) == 'archived'
    session.expire_all()
    account = session.get(models.Account, s.id)
    assert account.enabled is False
    assert session.exec(select(models.Progress)).all() == []
    kept = session.get(models.Message, msg.id)
    assert kept.sender_id == s.id
    assert [m.id for m in account.messages_sent] == [msg.id]


def test_meeting_participants_are_bidirectional(session, make_account):
    s = make_account('s@example.org')
    t = make_account('t@example.org', roles=('TUTOR',))
    student = session.get(models.Account, s.id)
    tutor = session.get(models.Account, t.id)
    meeting = models.Meeting(
        tutor_id=tutor.id,
        meeting_date=datetime(2026, 11, 2, 14, 0, tzinfo=timezone.utc),
        meeting_type='online',
        participants=[student, tutor],
    )
    session.add(meeting)
    session.commit()
    session.refresh(student)
    assert [m.id for m in student.meetings] == [meeting.id]
    assert sorted(a.id for a in meeting.participants) == sorted([s.id, t.id])


def test_course_participation_and_categories(session, make_account):
    s = make_account('s@example.org')
    t = make_account('t@example.org', roles=('TUTOR',))
    category = models.CourseCategory(category_name='Math')
    course = models.Course(course_name='Calculus', tutor_id=t.id, categories=[category])
    course.participants.append(session.get(models.Account, s.id))
    session.add(course)
    session.commit()
    student = session.get(models.Account, s.id)
    assert [c.course_name for c in student.courses] == ['Calculus']
    assert [c.course_name for c in category.courses] == ['Calculus']


def test_remove_tutor_of_course_or_meeting_archives_it(session, make_account):
    t = make_account('lecturer@example.org', roles=('TUTOR',))
    host = make_account('host@example.org', roles=('TUTOR',))
    course = _course(session, t.id)
    meeting = models.Meeting(tutor_id=host.id, meeting_date=datetime(2026, 11, 3, 9, 0, tzinfo=timezone.utc))
    session.add(meeting)
    session.commit()
    meeting_id = meeting.id

    service = AccountService(session)
    assert service.remove_account(t.id) == 'archived'
    assert service.remove_account(host.id) == 'archived'
    session.expire_all()
    assert session.get(models.Course, course.id).tutor_id == t.id
    assert session.get(models.Account, t.id).enabled is False
    assert session.get(models.Meeting, meeting_id).tutor_id == host.id
    assert session.get(models.Account, host.id).enabled is False
