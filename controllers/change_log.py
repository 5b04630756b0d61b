import datetime
import os
from zoneinfo import ZoneInfo

from models.cases import Case
from models.enums import CaseStatus
from models.user import User
from utils.serialize import now_iso


def build_entry(actor: User | None, action: str, **details) -> dict:
    entry = {
        "timestamp": now_iso(),
        "user_id": actor.user_id if actor else None,
        "user_name": actor.name if actor else None,
        "action": action,
    }
    entry.update(details)
    return entry


def append_entry(case: Case, entry: dict) -> None:
    """Append ``entry`` to the case log without mutating the stored list."""
    existing = case.change_log if isinstance(case.change_log, list) else []
    case.change_log = [*existing, entry]


def _student_display(student_id, students: dict) -> str:
    student = students.get(student_id)
    if student is None:
        return student_id or "-"
    return f"{student.number}{student.name}"


def format_entry(entry: dict, students: dict) -> str:
    """Render a log entry as ``M/DD HH:MM <text>`` in the clinic timezone.

    ``students`` maps user ids to User rows for display names.
    """
    timestamp = datetime.datetime.fromisoformat(entry["timestamp"])
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=datetime.UTC)
    timestamp = timestamp.astimezone(ZoneInfo(os.getenv("CLINIC_TIMEZONE", "Asia/Seoul")))
    date_str = f"{timestamp.month}/{timestamp.day:02d} {timestamp:%H:%M}"
    action = entry.get("action")

    if action == "case_created_from_excel":
        text = "ledger"
    elif action == "case_created":
        text = "created"
    elif action == "status_change":
        if entry.get("to") == CaseStatus.FAILED.value and entry.get("reason"):
            text = f"failed, {entry['reason']}"
        else:
            text = str(entry.get("to"))
    elif action == "case_transfer":
        text = "transfer {} -> {}".format(
            _student_display(entry.get("from_student_id"), students),
            _student_display(entry.get("to_student_id"), students),
        )
    elif action == "case_exchange_out":
        text = "exchange out -> {}".format(
            _student_display(entry.get("target_student_id"), students)
        )
    elif action == "case_exchange_in":
        text = "exchange in <- {}".format(
            _student_display(entry.get("source_student_id"), students)
        )
    elif action == "case_updated_by_admin":
        changed = [field for field, flag in (entry.get("changes") or {}).items() if flag]
        text = "edited by admin" + (f" ({', '.join(changed)})" if changed else "")
    else:
        text = str(action)
    return f"{date_str} {text}"


def format_log(case: Case, students: dict) -> list[dict]:
    """Log entries newest first, each with its rendered ``text``."""
    entries = case.change_log if isinstance(case.change_log, list) else []
    ordered = sorted(entries, key=lambda e: e.get("timestamp", ""), reverse=True)
    return [{**entry, "text": format_entry(entry, students)} for entry in ordered]
