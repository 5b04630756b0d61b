import os
import re
import time
import uuid

from fastapi import HTTPException
from sqlalchemy.orm import Session

from models.enums import Role
from models.student_master import StudentMaster
from models.user import User
from utils.serialize import now_iso
from utils.state import State
from utils.students import CURRENT_STUDENTS, get_student_label

# Registered students as plain dicts, shared by every request of this process
_registered_cache = {"students": [], "fetched_at": 0.0}


def invalidate_cache() -> None:
    _registered_cache["students"] = []
    _registered_cache["fetched_at"] = 0.0


def natural_key(number: str):
    """Sort key comparing digit runs numerically ("2" < "10")."""
    return [int(part) if part.isdigit() else part for part in re.split(r"(\d+)", number or "")]


def fetch_registered_students(db: Session) -> list[dict]:
    ttl = float(os.getenv("ROSTER_CACHE_SECONDS", "30"))
    now = time.monotonic()
    if _registered_cache["students"] and now - _registered_cache["fetched_at"] < ttl:
        return _registered_cache["students"]

    users = (
        db.query(User)
        .filter(User.role == Role.STUDENT.value)
        .order_by(User.number)
        .all()
    )
    _registered_cache["students"] = [
        {"user_id": user.user_id, "number": user.number, "name": user.name}
        for user in users
        if user.number
    ]
    _registered_cache["fetched_at"] = now
    return _registered_cache["students"]


def merge_roster(
    static_students,
    registered_students,
    exclude_user_id: str | None = None,
    only_registered: bool = False,
) -> list[dict]:
    """Union of the static list and registered users, keyed by student number.

    Names from registered users win over the static list. Registered
    students are identified by user id, the others by their number.
    """
    registered = {student["number"]: student for student in registered_students}
    static = {student["number"]: student for student in static_students}

    options = []
    for number in set(static) | set(registered):
        user = registered.get(number)
        if user and exclude_user_id and user["user_id"] == exclude_user_id:
            continue
        if only_registered and not user:
            continue
        name = (user or {}).get("name") or static.get(number, {}).get("name") or f"Student {number}"
        value = user["user_id"] if user else number
        options.append(
            {
                "id": value,
                "value": value,
                "label": get_student_label(number, name),
                "number": number,
                "name": name,
                "is_registered": user is not None,
            }
        )
    options.sort(key=lambda option: natural_key(option["number"]))
    return options


def hybrid_options(
    db: Session, exclude_user_id: str | None = None, only_registered: bool = False
) -> dict:
    options = merge_roster(
        CURRENT_STUDENTS,
        fetch_registered_students(db),
        exclude_user_id=exclude_user_id,
        only_registered=only_registered,
    )
    return {
        "students": options,
        "total_static": len(CURRENT_STUDENTS),
        "registered_count": sum(1 for option in options if option["is_registered"]),
        "unregistered": [option for option in options if not option["is_registered"]],
    }


def _option_for(entry: StudentMaster) -> dict:
    label = get_student_label(entry.number, entry.name)
    if not entry.is_registered:
        label += " (unregistered)"
    return {
        "id": entry.id,
        "number": entry.number,
        "name": entry.name,
        "label": label,
        "is_registered": entry.is_registered,
        "registered_user_id": entry.registered_user_id,
    }


def student_options(db: Session) -> list[dict]:
    entries = db.query(StudentMaster).order_by(StudentMaster.number).all()
    return [_option_for(entry) for entry in entries]


def roster_stats(db: Session) -> dict:
    total = db.query(StudentMaster).count()
    registered = db.query(StudentMaster).filter(StudentMaster.is_registered.is_(True)).count()
    State.logger.info(
        f"Student stats: total={total}, registered={registered}, unregistered={total - registered}"
    )
    return {"total": total, "registered": registered, "unregistered": total - registered}


def _upsert_entry(db: Session, number: str, name: str, user: User | None) -> StudentMaster:
    entry = db.query(StudentMaster).filter(StudentMaster.number == number).first()
    timestamp = now_iso()
    if entry is None:
        entry = StudentMaster(id=str(uuid.uuid4()), number=number, time_created=timestamp)
        db.add(entry)
    entry.name = name
    entry.is_registered = user is not None
    entry.registered_user_id = user.user_id if user else None
    entry.time_updated = timestamp
    db.flush()
    return entry


def upload_roster(students, db: Session) -> dict:
    """Upsert roster rows by number, linking rows whose student already signed up."""
    registered = {
        user.number: user
        for user in db.query(User).filter(User.role == Role.STUDENT.value).all()
        if user.number
    }
    result = {"success": False, "uploaded": 0, "updated": 0, "errors": []}

    for student in students:
        number = (student.number or "").strip()
        name = (student.name or "").strip()
        if not number or not name:
            result["errors"].append(f"Empty data: number={number}, name={name}")
            continue
        user = registered.get(number)
        _upsert_entry(db, number, name, user)
        if user:
            result["updated"] += 1
        else:
            result["uploaded"] += 1

    db.commit()
    result["success"] = not result["errors"] or result["uploaded"] + result["updated"] > 0
    State.logger.info(
        f"Roster upload: uploaded={result['uploaded']}, updated={result['updated']}, errors={len(result['errors'])}"
    )
    return result


def force_sync(db: Session) -> dict:
    """Mark every signed-up student as registered in the roster."""
    result = {"updated": 0, "errors": []}
    users = db.query(User).filter(User.role == Role.STUDENT.value).all()
    for user in users:
        if not user.number or not user.name:
            result["errors"].append(f"{user.number} {user.name}: missing number or name")
            continue
        _upsert_entry(db, user.number, user.name, user)
        result["updated"] += 1
        State.logger.info(f"Force synced: {user.number} {user.name}")
    db.commit()
    return result


def ensure_number_available(number: str, user_id: str | None, db: Session) -> None:
    """Raise 400 when ``number`` is already linked to another student account."""
    entry = db.query(StudentMaster).filter(StudentMaster.number == number).first()
    if entry is None or not entry.registered_user_id or entry.registered_user_id == user_id:
        return
    owner = db.query(User).filter(User.user_id == entry.registered_user_id).first()
    if owner is not None:
        State.logger.error(f"Student number {number} is already linked to {owner.user_id}")
        raise HTTPException(
            status_code=400,
            detail=f"Student number {number} is already registered to another account.",
        )


def link_registration(user: User, db: Session) -> StudentMaster:
    """Link (or create) the roster row for a student who just signed up."""
    ensure_number_available(user.number, user.user_id, db)
    entry = db.query(StudentMaster).filter(StudentMaster.number == user.number).first()
    return _upsert_entry(db, user.number, entry.name if entry else user.name, user)


def relink_registration(user: User, db: Session) -> None:
    """Point the roster at the user's current number and role after an edit."""
    unlink_registration(user.user_id, db)
    db.flush()
    if user.role == Role.STUDENT.value and user.number:
        link_registration(user, db)


def unlink_registration(user_id: str, db: Session) -> None:
    entries = (
        db.query(StudentMaster).filter(StudentMaster.registered_user_id == user_id).all()
    )
    for entry in entries:
        entry.is_registered = False
        entry.registered_user_id = None
        entry.time_updated = now_iso()


def validate_registration(user_id: str, db: Session) -> User:
    """Resolve a selected student id to a signed-up student user.

    Raises 400 with the reason the student cannot be selected.
    """
    entry = (
        db.query(StudentMaster).filter(StudentMaster.registered_user_id == user_id).first()
    )
    if entry is None:
        raise HTTPException(status_code=400, detail="Student is not on the roster.")
    if not entry.is_registered:
        raise HTTPException(
            status_code=400, detail=f"{entry.name} has not signed up yet."
        )
    user = (
        db.query(User)
        .filter(User.user_id == entry.registered_user_id, User.role == Role.STUDENT.value)
        .first()
    )
    if user is None:
        raise HTTPException(status_code=400, detail="Student account not found.")
    return user
