import datetime
import uuid

from sqlalchemy.orm import Session

from controllers.change_log import build_entry
from models.cases import Case
from models.enums import AcquisitionMethod, CaseStatus, parse_category
from models.patients import Patient
from models.user import User
from utils.serialize import now_iso
from utils.state import State

DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%Y.%m.%d %H:%M",
    "%Y.%m.%d %H:%M:%S",
    "%Y%m%d %H%M",
)

REQUIRED_FIELDS = (
    ("reservation_date", "Reservation date is missing."),
    ("reservation_time", "Reservation time is missing."),
    ("patient_number", "Patient number is missing."),
    ("patient_name", "Patient name is missing."),
    ("doctor", "Reservation doctor is missing."),
)


def parse_datetime(date_text: str, time_text: str) -> datetime.datetime | None:
    # Spreadsheet cells sometimes carry a midnight time on the date column
    date_text = date_text.split(" ")[0].split("T")[0]
    combined = f"{date_text} {time_text}".strip()
    for fmt in DATETIME_FORMATS:
        try:
            return datetime.datetime.strptime(combined, fmt)
        except ValueError:
            continue
    return None


def validate_row(row) -> str | None:
    for field, message in REQUIRED_FIELDS:
        if not getattr(row, field):
            return message
    if not row.category:
        return "Category is missing. (blank rows are skipped)"
    if parse_category(row.category) is None:
        return f"Category '{row.category}' is not valid. (skipped)"
    return None


def duplicate_key(patient_number: str, when: datetime.datetime, category: str):
    return (patient_number, when.replace(second=0, microsecond=0), category)


def find_duplicate(db: Session, key) -> Case | None:
    patient_number, when, category = key
    return (
        db.query(Case)
        .filter(
            Case.patient_number == patient_number,
            Case.datetime == when,
            Case.category == category,
        )
        .first()
    )


def upsert_patient(db: Session, patient_number: str, patient_name: str) -> Patient:
    patient = db.query(Patient).filter(Patient.patient_number == patient_number).first()
    timestamp = now_iso()
    if patient is None:
        patient = Patient(patient_number=patient_number, time_created=timestamp)
        db.add(patient)
    patient.patient_name = patient_name
    patient.time_updated = timestamp
    db.flush()
    return patient


def import_cases(rows, actor: User, db: Session) -> dict:
    """Create ledger cases from parsed spreadsheet rows.

    Rows failing validation or duplicating a stored case (or an earlier row
    of the same batch) are reported and skipped; the rest are imported.
    """
    imported = 0
    errors = []
    duplicates = []
    seen = set()

    for index, row in enumerate(rows, start=1):
        error = validate_row(row)
        if error:
            errors.append({"row": index, "error": error})
            continue

        when = parse_datetime(row.reservation_date, row.reservation_time)
        if when is None:
            errors.append({"row": index, "error": "Invalid date/time format."})
            continue

        category = parse_category(row.category)
        key = duplicate_key(row.patient_number, when, category.value)
        if key in seen or find_duplicate(db, key):
            duplicates.append({"row": index, "patient_number": row.patient_number})
            continue
        seen.add(key)

        try:
            upsert_patient(db, row.patient_number, row.patient_name)
            timestamp = now_iso()
            db.add(
                Case(
                    case_id=str(uuid.uuid4()),
                    datetime=key[1],
                    category=category.value,
                    assigned_resident=row.doctor,
                    patient_number=row.patient_number,
                    patient_name=row.patient_name,
                    assigned_student1=None,
                    assigned_student2=None,
                    case_status=CaseStatus.IN_PROGRESS.value,
                    acquisition_method=AcquisitionMethod.LEDGER.value,
                    treatment_details=row.treatment_details or None,
                    change_log=[build_entry(actor, "case_created_from_excel")],
                    time_created=timestamp,
                    time_updated=timestamp,
                )
            )
            db.commit()
            imported += 1
        except Exception as e:
            db.rollback()
            State.logger.error(f"Failed to import row {index}: {str(e)}")
            errors.append({"row": index, "error": f"Processing error: {str(e)}"})

    State.logger.info(
        f"Case import finished: imported={imported}, errors={len(errors)}, duplicates={len(duplicates)}"
    )
    return {"success": imported, "errors": errors, "duplicates": duplicates}
