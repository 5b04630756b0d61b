"""Reassigning in-progress cases between students.

Both workflows rewrite the student slots of one or two cases, append the
matching change-log entries and commit everything in a single transaction
before refreshing the case counters of the students involved.
"""

from fastapi import HTTPException
from sqlalchemy.orm import Session

from controllers.analytics import sync_students
from controllers.change_log import append_entry, build_entry
from models.cases import Case
from models.enums import CaseStatus, Role
from models.user import User
from utils.serialize import now_iso
from utils.state import State


def _slot_of(case: Case, student_id: str) -> str | None:
    if case.assigned_student1 == student_id:
        return "assigned_student1"
    if case.assigned_student2 == student_id:
        return "assigned_student2"
    return None


def _other_slot(slot: str) -> str:
    return "assigned_student2" if slot == "assigned_student1" else "assigned_student1"


def _require_in_progress(case: Case) -> None:
    if case.case_status != CaseStatus.IN_PROGRESS.value:
        raise HTTPException(
            status_code=400,
            detail=f"Case {case.case_id} is not in progress and cannot be reassigned",
        )


def get_student(student_id: str, db: Session) -> User:
    student = (
        db.query(User)
        .filter(User.user_id == student_id, User.role == Role.STUDENT.value)
        .first()
    )
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    return student


def transfer_case(case: Case, actor: User, target: User, note: str | None, db: Session) -> Case:
    """Hand ``actor``'s place on ``case`` over to ``target``."""
    _require_in_progress(case)
    slot = _slot_of(case, actor.user_id)
    if slot is None:
        raise HTTPException(status_code=403, detail="You are not assigned to this case")
    if target.user_id == actor.user_id:
        raise HTTPException(status_code=400, detail="Cannot transfer a case to yourself")
    if getattr(case, _other_slot(slot)) == target.user_id:
        raise HTTPException(
            status_code=400, detail="Target student is already assigned to this case"
        )

    try:
        setattr(case, slot, target.user_id)
        case.time_updated = now_iso()
        append_entry(
            case,
            build_entry(
                actor,
                "case_transfer",
                from_student_id=actor.user_id,
                from_student_name=actor.name,
                to_student_id=target.user_id,
                to_student_name=target.name,
                note=note or None,
            ),
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    State.logger.info(
        f"Case {case.case_id} transferred from {actor.user_id} to {target.user_id}"
    )
    sync_students([actor.user_id, target.user_id], db)
    db.refresh(case)
    return case


def exchange_cases(
    my_case: Case, their_case: Case, actor: User, other: User, db: Session
) -> tuple[Case, Case]:
    """Swap ``actor`` on ``my_case`` with ``other`` on ``their_case``."""
    if my_case.case_id == their_case.case_id:
        raise HTTPException(status_code=400, detail="Cannot exchange a case with itself")
    if actor.user_id == other.user_id:
        raise HTTPException(status_code=400, detail="Cannot exchange cases with yourself")
    _require_in_progress(my_case)
    _require_in_progress(their_case)

    my_slot = _slot_of(my_case, actor.user_id)
    if my_slot is None:
        raise HTTPException(status_code=403, detail="You are not assigned to your case")
    their_slot = _slot_of(their_case, other.user_id)
    if their_slot is None:
        raise HTTPException(
            status_code=400, detail="Selected student is not assigned to their case"
        )
    if getattr(my_case, _other_slot(my_slot)) == other.user_id:
        raise HTTPException(
            status_code=400, detail="Selected student is already assigned to your case"
        )
    if getattr(their_case, _other_slot(their_slot)) == actor.user_id:
        raise HTTPException(
            status_code=400, detail="You are already assigned to their case"
        )

    try:
        timestamp = now_iso()
        setattr(my_case, my_slot, other.user_id)
        setattr(their_case, their_slot, actor.user_id)
        my_case.time_updated = timestamp
        their_case.time_updated = timestamp
        append_entry(
            my_case,
            build_entry(
                actor,
                "case_exchange_out",
                target_case_id=their_case.case_id,
                target_student_id=other.user_id,
                target_student_name=other.name,
            ),
        )
        append_entry(
            their_case,
            build_entry(
                actor,
                "case_exchange_in",
                source_case_id=my_case.case_id,
                source_student_id=actor.user_id,
                source_student_name=actor.name,
            ),
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    State.logger.info(
        f"Cases {my_case.case_id} and {their_case.case_id} exchanged between {actor.user_id} and {other.user_id}"
    )
    sync_students([actor.user_id, other.user_id], db)
    db.refresh(my_case)
    db.refresh(their_case)
    return my_case, their_case
