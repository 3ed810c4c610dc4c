"""CLI script to seed a local database with demo accounts and a chat.
Usage: python scripts/seed_demo.py [--password PASSWORD]
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `tutorium` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from tutorium.database import engine, create_db_and_tables
from tutorium import services
from tutorium.exceptions import DuplicateEmailError
from tutorium.repositories import AccountRepository
from tutorium.schemas import AccountCreate, ChatCreate, MessageDraft

DEMO_ACCOUNTS = [
    ("Alex", "Student", "student@tutorium.example.org", ["STUDENT"]),
    ("Toni", "Tutor", "tutor@tutorium.example.org", ["TUTOR", "STUDENT"]),
    ("Vera", "Admin", "admin@tutorium.example.org", ["ADMIN", "VERIFIER"]),
]


def main(password: str = "demo"):
    """Create the demo accounts (skipping existing ones), verify the tutor
    and open a chat between student and tutor with a greeting message.
    """
    create_db_and_tables()
    with Session(engine) as session:
        accounts = services.AccountService(session)
        ids = {}
        for first, last, email, roles in DEMO_ACCOUNTS:
            try:
                out = accounts.register(AccountCreate(first_name=first, last_name=last, email=email, password=password, roles=roles))
                ids[email] = out.id
                print(f"created {email} (id={out.id})")
            except DuplicateEmailError:
                ids[email] = AccountRepository(session).get_by_email(email).id
                print(f"exists  {email} (id={ids[email]})")
        student, tutor, admin = (ids[a[2]] for a in DEMO_ACCOUNTS)
        accounts.verify_account(tutor, admin)
        chat_id = services.ChatService(session).create_chat(ChatCreate(chat_name="welcome", participant_ids=[student, tutor]))
        msg = services.MessageService(session).save_message(
            MessageDraft(sender_id=tutor, receiver_id=student, chat_id=chat_id, content="Welcome to Tutorium!")
        )
        print(f"chat {chat_id} with message {msg.id}")


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument('--password', default='demo')
    args = parser.parse_args()
    main(args.password)
