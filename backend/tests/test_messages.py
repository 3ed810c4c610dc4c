from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from tutorium import models
from tutorium.exceptions import ChatNotFoundError, InvalidInputError, StorageError, UnknownParticipantError
from tutorium.schemas import MessageDraft, MessageOut
from tutorium.services import MessageService


def test_save_message_scenario(session, make_account):
    a = make_account('a@example.org')
    b = make_account('b@example.org')
    started = datetime.now(timezone.utc)
    out = MessageService(session).save_message(MessageDraft(sender_id=a.id, receiver_id=b.id, content='hello'))
    assert out.id
    assert out.sender_id == a.id
    assert out.receiver_id == b.id
    assert out.chat_id is None
    assert out.content == 'hello'
    assert out.timestamp >= started


def test_unknown_receiver_is_rejected_before_persisting(session, make_account):
    a = make_account('a@example.org')
    with pytest.raises(UnknownParticipantError) as info:
        MessageService(session).save_message(MessageDraft(sender_id=a.id, receiver_id=999, content='hi'))
    assert info.value.field == 'receiver'
    assert session.exec(select(models.Message)).all() == []


def test_unknown_sender_over_rest(client, make_account):
    b = make_account('b@example.org')
    r = client.post('/message/send', json={'sender_id': 999, 'receiver_id': b.id, 'content': 'hi'})
    assert r.status_code == 400


def test_empty_content_is_invalid(session, make_account):
    a = make_account('a@example.org')
    b = make_account('b@example.org')
    with pytest.raises(InvalidInputError):
        MessageService(session).save_message(MessageDraft(sender_id=a.id, receiver_id=b.id, content='   '))


def test_unknown_chat(client, session, make_account):
    a = make_account('a@example.org')
    b = make_account('b@example.org')
    with pytest.raises(ChatNotFoundError):
        MessageService(session).save_message(MessageDraft(sender_id=a.id, receiver_id=b.id, content='x', chat_id=77))
    r = client.post('/message/send', json={'sender_id': a.id, 'receiver_id': b.id, 'content': 'x', 'chat_id': 77})
    assert r.status_code == 404


def test_rest_send_returns_projection(client, make_account):
    a = make_account('a@example.org')
    b = make_account('b@example.org')
    r = client.post('/message/send', json={'sender_id': a.id, 'receiver_id': b.id, 'content': 'hello'})
    assert r.status_code == 200
    body = r.json()
    assert set(body) == {'id', 'sender_id', 'receiver_id', 'chat_id', 'content', 'timestamp', 'is_read'}
    assert body['content'] == 'hello'
    assert body['chat_id'] is None


def test_websocket_broadcasts_to_every_subscriber(client, make_account):
    a = make_account('a@example.org')
    b = make_account('b@example.org')
    draft = {'sender_id': a.id, 'receiver_id': b.id, 'content': 'live'}
    with client.websocket_connect('/ws') as ws1, client.websocket_connect('/ws') as ws2:
        ws1.send_json(draft)
        got1 = ws1.receive_json()
        got2 = ws2.receive_json()
    assert got1 == got2
    assert got1['content'] == 'live'
    assert got1['id']


def test_rest_and_websocket_projections_match(client, make_account):
    a = make_account('a@example.org')
    b = make_account('b@example.org')
    draft = {'sender_id': a.id, 'receiver_id': b.id, 'content': 'same'}
    rest = client.post('/message/send', json=draft).json()
    with client.websocket_connect('/ws') as ws:
        ws.send_json(draft)
        live = ws.receive_json()
    assert set(rest) == set(live)
    for key in ('id', 'timestamp'):
        rest.pop(key)
        live.pop(key)
    assert rest == live
    # both timestamps parse to the same model type
    MessageOut.model_validate(client.post('/message/send', json=draft).json())


def test_websocket_reports_errors_to_sender(client, session, make_account):
    a = make_account('a@example.org')
    with client.websocket_connect('/ws') as ws:
        ws.send_json({'sender_id': a.id, 'receiver_id': 999, 'content': 'hi'})
        err = ws.receive_json()
        assert err['status'] == 400
        ws.send_text('not json at all')
        err = ws.receive_json()
        assert err == {'error': 'invalid message payload', 'status': 400}
        ws.send_bytes(b'\x00\x01')
        assert ws.receive_json() == {'error': 'invalid message payload', 'status': 400}
        ws.send_json({'sender_id': a.id, 'receiver_id': a.id, 'content': 'still open'})
        assert ws.receive_json()['content'] == 'still open'
    assert [m.content for m in session.exec(select(models.Message)).all()] == ['still open']


def test_storage_failure_surfaces_as_500(client, monkeypatch, make_account):
    a = make_account('a@example.org')
    b = make_account('b@example.org')

    def _boom(self, message):
        raise StorageError("disk full")

    monkeypatch.setattr("tutorium.repositories.MessageRepository.create", _boom)
    r = client.post('/message/send', json={'sender_id': a.id, 'receiver_id': b.id, 'content': 'x'})
    assert r.status_code == 500
    assert r.json() == {'detail': 'storage failure'}
    with client.websocket_connect('/ws') as ws:
        ws.send_json({'sender_id': a.id, 'receiver_id': b.id, 'content': 'x'})
        assert ws.receive_json() == {'error': 'storage failure', 'status': 500}


def test_database_error_while_validating_surfaces_as_500(client, monkeypatch, make_account):
    a = make_account('a@example.org')
    b = make_account('b@example.org')

    def _locked(self, account_id):
        raise OperationalError("SELECT user_account.id", {}, Exception("database is locked"))

    monkeypatch.setattr("tutorium.repositories.AccountRepository.exists", _locked)
    draft = {'sender_id': a.id, 'receiver_id': b.id, 'content': 'x'}
    r = client.post('/message/send', json=draft)
    assert r.status_code == 500
    assert r.json() == {'detail': 'storage failure'}
    with client.websocket_connect('/ws') as ws:
        ws.send_json(draft)
        assert ws.receive_json() == {'error': 'storage failure', 'status': 500}


def test_save_message_wraps_database_errors(session, monkeypatch, make_account):
    a = make_account('a@example.org')

    def _locked(self, account_id):
        raise OperationalError("SELECT user_account.id", {}, Exception("database is locked"))

    monkeypatch.setattr("tutorium.repositories.AccountRepository.exists", _locked)
    with pytest.raises(StorageError) as info:
        MessageService(session).save_message(MessageDraft(sender_id=a.id, receiver_id=a.id, content='hi'))
    assert isinstance(info.value.__cause__, OperationalError)


def test_chat_messages_are_ordered_by_timestamp(client, make_account):
    a = make_account('a@example.org')
    b = make_account('b@example.org')
    created = client.post('/chat-create', json={'participant_ids': [a.id, b.id]})
    chat_id = int(created.headers['location'].rsplit('/', 1)[1])
    late = {'sender_id': a.id, 'receiver_id': b.id, 'content': 'second', 'chat_id': chat_id,
            'timestamp': '2026-01-01T10:05:00+00:00'}
    early = {'sender_id': b.id, 'receiver_id': a.id, 'content': 'first', 'chat_id': chat_id,
             'timestamp': '2026-01-01T10:00:00+00:00'}
    client.post('/message/send', json=late)
    client.post('/message/send', json=early)
    r = client.get(f'/message/chat/{chat_id}')
    assert r.status_code == 200
    assert [m['content'] for m in r.json()] == ['first', 'second']
    assert client.get('/message/chat/9999').status_code == 404
