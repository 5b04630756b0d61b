import datetime
from collections import Counter

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from models.cases import Case
from models.enums import CATEGORY_COUNTER_COLUMNS, CaseStatus, Category, Role
from models.user import User
from utils.serialize import now_iso
from utils.state import State


def bucket_counts(values, max_value: int) -> list[dict]:
    """Histogram of ``values`` with one bucket per 0..max_value plus an overflow bucket."""
    counter = Counter(min(value, max_value + 1) for value in values)
    buckets = [{"range": str(i), "count": counter.get(i, 0)} for i in range(max_value + 1)]
    buckets.append({"range": f">{max_value}", "count": counter.get(max_value + 1, 0)})
    return buckets


def student_cases_filter(student_id: str):
    return or_(Case.assigned_student1 == student_id, Case.assigned_student2 == student_id)


def sync_student_case_count(student_id: str, db: Session, commit: bool = True):
    """Recount a student's cases per category into the users table counters."""
    user = db.query(User).filter(User.user_id == student_id).first()
    if not user:
        State.logger.warning(f"Skipping case count sync, user {student_id} not found")
        return None

    counts = {category: 0 for category in Category}
    rows = db.query(Case.category).filter(student_cases_filter(student_id)).all()
    for (category,) in rows:
        try:
            counts[Category(category)] += 1
        except ValueError:
            State.logger.warning(f"Ignoring unknown category {category!r} for {student_id}")

    for category, column in CATEGORY_COUNTER_COLUMNS.items():
        setattr(user, column, counts[category])
    user.total_cases = sum(counts.values())
    user.last_case_sync = now_iso()
    if commit:
        db.commit()
    State.logger.info(f"Student {student_id} case count synced: {user.total_cases}")
    return {category.value: count for category, count in counts.items()}


def sync_students(student_ids, db: Session) -> None:
    for student_id in {sid for sid in student_ids if sid}:
        sync_student_case_count(student_id, db, commit=False)
    db.commit()


def sync_all_student_case_counts(db: Session) -> int:
    students = db.query(User).filter(User.role == Role.STUDENT.value).all()
    for student in students:
        sync_student_case_count(student.user_id, db, commit=False)
    db.commit()
    return len(students)


def _stats_for(user: User) -> dict:
    stats = {
        "student_id": user.user_id,
        "student_name": user.name,
        "student_number": user.number,
    }
    for category, column in CATEGORY_COUNTER_COLUMNS.items():
        stats[category.value] = getattr(user, column) or 0
    stats["total"] = user.total_cases or 0
    return stats


def all_student_stats(db: Session) -> list[dict]:
    students = (
        db.query(User)
        .filter(User.role == Role.STUDENT.value)
        .order_by(User.number)
        .all()
    )
    return [_stats_for(student) for student in students]


def student_stats(student_id: str, db: Session) -> dict:
    student = (
        db.query(User)
        .filter(User.user_id == student_id, User.role == Role.STUDENT.value)
        .first()
    )
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    return _stats_for(student)


def category_distribution(db: Session, max_value: int = 2) -> list[dict]:
    students = db.query(User).filter(User.role == Role.STUDENT.value).all()
    distributions = []
    for category, column in CATEGORY_COUNTER_COLUMNS.items():
        total_cases = db.query(Case).filter(Case.category == category.value).count()
        assigned_cases = (
            db.query(Case)
            .filter(Case.category == category.value, Case.assigned_student1.isnot(None))
            .count()
        )
        counts = [getattr(student, column) or 0 for student in students]
        average = round(sum(counts) / len(counts), 2) if counts else 0
        distributions.append(
            {
                "category": category.value,
                "total_cases": total_cases,
                "assigned_cases": assigned_cases,
                "average_per_student": average,
                "students": bucket_counts(counts, max_value),
            }
        )
    return distributions


def dashboard_stats(db: Session) -> dict:
    cases = db.query(Case.category, Case.case_status, Case.assigned_student1, Case.assigned_student2).all()
    student_ids = [
        user_id
        for (user_id,) in db.query(User.user_id).filter(User.role == Role.STUDENT.value).all()
    ]
    total_students = len(student_ids)

    per_category = Counter(row.category for row in cases)
    per_status = Counter(row.case_status for row in cases)
    per_student = Counter()
    for row in cases:
        for student_id in (row.assigned_student1, row.assigned_student2):
            if student_id:
                per_student[student_id] += 1

    week_ago = (datetime.datetime.now(datetime.UTC) - datetime.timedelta(days=7)).isoformat()
    recent_activity = db.query(Case).filter(Case.time_created >= week_ago).count()

    return {
        "total_cases": len(cases),
        "total_students": total_students,
        "cases_per_category": [
            {"category": c.value, "count": per_category.get(c.value, 0)} for c in Category
        ],
        "average_cases_per_category": [
            {
                "category": c.value,
                "average": round(per_category.get(c.value, 0) / total_students, 2)
                if total_students
                else 0,
            }
            for c in Category
        ],
        "case_status_distribution": [
            {"status": s.value, "count": per_status.get(s.value, 0)} for s in CaseStatus
        ],
        "student_distribution": bucket_counts(
            [per_student.get(student_id, 0) for student_id in student_ids], 2
        ),
        "recent_activity": recent_activity,
    }


def case_progress(cases) -> dict:
    """Completion summary of a student's cases, per category and overall."""
    per_category = {}
    for category in Category:
        subset = [case for case in cases if case.category == category.value]
        per_category[category.value] = {
            "total": len(subset),
            **{
                status.value: sum(1 for case in subset if case.case_status == status.value)
                for status in CaseStatus
            },
        }
    completed = sum(1 for case in cases if case.case_status == CaseStatus.COMPLETE.value)
    return {
        "categories": per_category,
        "completed": completed,
        "total": len(cases),
        "percent": round(completed / len(cases) * 100) if cases else 0,
    }


def charting_stats(db: Session) -> dict:
    """Charting and diagnosis totals across all students; missing progress counts as 0."""
    students = db.query(User).filter(User.role == Role.STUDENT.value).all()
    charting = []
    diagnosis = []
    for student in students:
        progress = student.charting_progress
        charting.append(progress.charting_count if progress else 0)
        diagnosis.append(progress.diagnosis_total_count if progress else 0)

    count = len(students)
    return {
        "student_count": count,
        "charting_distribution": bucket_counts(charting, 10),
        "diagnosis_distribution": bucket_counts(diagnosis, 2),
        "total_charting": sum(charting),
        "total_diagnosis": sum(diagnosis),
        "average_charting": round(sum(charting) / count, 2) if count else 0,
        "average_diagnosis": round(sum(diagnosis) / count, 2) if count else 0,
    }
