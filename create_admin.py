"""Create the administrator account from ADMIN_EMAIL / ADMIN_PASSWORD.

Run once after deploying:

    python create_admin.py

An existing account with that email gets its password reset and is promoted
to admin.
"""

from dotenv import load_dotenv

load_dotenv(".env")

import datetime
import os
import sys
import uuid

from database.database import Base, SessionLocal, engine
from models import cases as _cases  # noqa: F401
from models import charting_progress as _charting_progress  # noqa: F401
from models import patients as _patients  # noqa: F401
from models import student_master as _student_master  # noqa: F401
from models import token as _token  # noqa: F401
from models.enums import Role
from models.user import User
from utils.state import State
from utils.token import get_hashed_password


def create_admin(email: str, password: str, name: str = "Administrator") -> User:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        timestamp = datetime.datetime.now(datetime.UTC).isoformat()
        user = db.query(User).filter(User.email == email).first()
        if user is None:
            user = User(
                user_id=str(uuid.uuid4()),
                email=email,
                name=name,
                time_created=timestamp,
            )
            db.add(user)
            State.logger.info(f"Creating admin account {email}")
        else:
            State.logger.info(f"Admin account {email} exists, resetting password and role")
        user.password = get_hashed_password(password)
        user.role = Role.ADMIN.value
        user.time_updated = timestamp
        db.commit()
        db.refresh(user)
        return user
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def main() -> int:
    email = os.getenv("ADMIN_EMAIL")
    password = os.getenv("ADMIN_PASSWORD")
    if not email or not password:
        State.logger.error("ADMIN_EMAIL and ADMIN_PASSWORD must be set")
        return 1
    user = create_admin(email, password)
    State.logger.info(f"Admin account ready: {user.email} ({user.user_id})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
