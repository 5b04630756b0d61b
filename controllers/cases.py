import datetime
import uuid

from fastapi import HTTPException
from sqlalchemy import desc, extract, or_
from sqlalchemy.orm import Session

from controllers.analytics import student_cases_filter, sync_students
from controllers.case_import import upsert_patient
from controllers.change_log import append_entry, build_entry
from controllers.roster import validate_registration
from models.cases import Case
from models.enums import AcquisitionMethod, CaseStatus, Role
from models.user import User
from utils.serialize import now_iso, row_to_dict, student_brief
from utils.state import State

REQUIRED_CASE_FIELDS = (
    "datetime",
    "category",
    "assigned_resident",
    "patient_number",
    "patient_name",
    "case_status",
    "acquisition_method",
)


def case_to_dict(case: Case) -> dict:
    data = row_to_dict(case)
    data["student1"] = student_brief(case.student1)
    data["student2"] = student_brief(case.student2)
    return data


def get_case_or_404(case_id: str, db: Session) -> Case:
    case = db.query(Case).filter(Case.case_id == case_id).first()
    if not case:
        State.logger.error(f"Case with ID {case_id} not found")
        raise HTTPException(status_code=404, detail="Case not found")
    return case


def query_cases(
    db: Session,
    viewer: User,
    category: str | None = None,
    status: str | None = None,
    resident: str | None = None,
    month: int | None = None,
    search: str | None = None,
):
    query = db.query(Case)
    if viewer.role == Role.RESIDENT.value:
        query = query.filter(Case.assigned_resident == viewer.name)
    if category:
        query = query.filter(Case.category == category)
    if status:
        query = query.filter(Case.case_status == status)
    if resident:
        query = query.filter(Case.assigned_resident == resident)
    if month:
        query = query.filter(extract("month", Case.datetime) == month)
    if search:
        query = query.filter(
            or_(
                Case.patient_name.icontains(search, autoescape=True),
                Case.patient_number.icontains(search, autoescape=True),
                Case.assigned_resident.icontains(search, autoescape=True),
            )
        )
    return query.order_by(desc(Case.datetime)).all()


def student_cases(db: Session, student_id: str, status: str | None = None):
    query = db.query(Case).filter(student_cases_filter(student_id))
    if status:
        query = query.filter(Case.case_status == status)
    return query.order_by(desc(Case.datetime)).all()


def list_residents(db: Session) -> list[str]:
    rows = db.query(Case.assigned_resident).distinct().all()
    return sorted(resident for (resident,) in rows if resident)


def find_duplicates(db: Session, patient_number: str):
    return (
        db.query(Case)
        .filter(Case.patient_number == patient_number)
        .order_by(desc(Case.datetime))
        .all()
    )


def _resolve_student(student_id: str | None, db: Session) -> str | None:
    if not student_id:
        return None
    return validate_registration(student_id, db).user_id


def _require_distinct(student1: str | None, student2: str | None) -> None:
    if student1 and student1 == student2:
        raise HTTPException(
            status_code=400, detail="A case cannot be assigned to the same student twice"
        )


def create_case(req, actor: User, db: Session) -> Case:
    """Register a case entered by a user (acquisition method ``assignment``).

    Returns 409 with the existing cases of the patient unless ``req.force``.
    """
    if not req.force:
        duplicates = find_duplicates(db, req.patient_number)
        if duplicates:
            State.logger.warning(
                f"Patient {req.patient_number} already has {len(duplicates)} case(s)"
            )
            raise HTTPException(
                status_code=409,
                detail={
                    "message": f"Patient {req.patient_number} already has {len(duplicates)} case(s)",
                    "duplicates": [case_to_dict(case) for case in duplicates],
                },
            )

    student1 = _resolve_student(req.assigned_student1, db)
    if student1 is None and actor.role == Role.STUDENT.value:
        student1 = actor.user_id
    student2 = _resolve_student(req.assigned_student2, db)
    _require_distinct(student1, student2)

    try:
        upsert_patient(db, req.patient_number, req.patient_name)
        timestamp = now_iso()
        case = Case(
            case_id=str(uuid.uuid4()),
            datetime=req.datetime,
            category=req.category.value,
            assigned_resident=req.assigned_resident,
            patient_number=req.patient_number,
            patient_name=req.patient_name,
            assigned_student1=student1,
            assigned_student2=student2,
            case_status=CaseStatus.IN_PROGRESS.value,
            acquisition_method=AcquisitionMethod.ASSIGNMENT.value,
            treatment_details=req.treatment_details or None,
            note=req.note or None,
            change_log=[build_entry(actor, "case_created")],
            time_created=timestamp,
            time_updated=timestamp,
        )
        db.add(case)
        db.commit()
    except Exception:
        db.rollback()
        raise
    sync_students([student1, student2], db)
    db.refresh(case)
    return case


def update_status(case: Case, req, actor: User, db: Session) -> Case:
    if actor.role != Role.ADMIN.value and actor.user_id not in (
        case.assigned_student1,
        case.assigned_student2,
    ):
        raise HTTPException(status_code=403, detail="You are not assigned to this case")
    if req.reason is not None and req.status != CaseStatus.FAILED:
        raise HTTPException(
            status_code=400, detail="A reason can only be given for failed cases"
        )

    previous = case.case_status
    case.case_status = req.status.value
    case.time_updated = now_iso()
    append_entry(
        case,
        build_entry(
            actor,
            "status_change",
            **{
                "from": previous,
                "to": req.status.value,
                "reason": req.reason.value if req.reason else None,
            },
        ),
    )
    db.commit()
    db.refresh(case)
    return case


def _normalize_datetime(value):
    if isinstance(value, datetime.datetime):
        return value.replace(second=0, microsecond=0)
    return value


def admin_update_case(case: Case, req, actor: User, db: Session) -> Case:
    """Apply an admin edit and log which fields actually changed."""
    updates = req.model_dump(exclude_unset=True)
    for field in REQUIRED_CASE_FIELDS:
        if field in updates and updates[field] is None:
            del updates[field]
    for field in ("assigned_student1", "assigned_student2"):
        if field in updates:
            updates[field] = _resolve_student(updates[field], db)
    for field in ("category", "case_status", "acquisition_method"):
        if updates.get(field) is not None:
            updates[field] = updates[field].value

    student1 = updates.get("assigned_student1", case.assigned_student1)
    student2 = updates.get("assigned_student2", case.assigned_student2)
    _require_distinct(student1, student2)
    previous_students = [case.assigned_student1, case.assigned_student2]

    changes = {}
    for field in (
        "datetime",
        "category",
        "assigned_resident",
        "assigned_student1",
        "assigned_student2",
        "case_status",
    ):
        if field in updates:
            changes[field] = _normalize_datetime(updates[field]) != _normalize_datetime(
                getattr(case, field)
            )
        else:
            changes[field] = False

    try:
        for field, value in updates.items():
            if field in ("treatment_details", "note") and value == "":
                value = None
            setattr(case, field, value)
        case.time_updated = now_iso()
        append_entry(case, build_entry(actor, "case_updated_by_admin", changes=changes))
        upsert_patient(db, case.patient_number, case.patient_name)
        db.commit()
    except Exception:
        db.rollback()
        raise
    sync_students(previous_students + [student1, student2], db)
    db.refresh(case)
    return case


def delete_case(case: Case, db: Session) -> None:
    students = [case.assigned_student1, case.assigned_student2]
    db.delete(case)
    db.commit()
    sync_students(students, db)
