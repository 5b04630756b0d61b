from enum import Enum


class Role(str, Enum):
    STUDENT = "student"
    ADMIN = "admin"
    RESIDENT = "resident"


class Category(str, Enum):
    REMOVABLE = "removable"
    FIXED = "fixed"
    IMPLANT = "implant"
    IMPLANT_SURGERY = "implant_surgery"


class CaseStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    FAILED = "failed"


class AcquisitionMethod(str, Enum):
    LEDGER = "ledger"
    ASSIGNMENT = "assignment"


class FailureReason(str, Enum):
    NOT_TOTAL = "not_total"
    PERSONAL_ERROR = "personal_error"
    REPORT_REJECTED = "report_rejected"
    OTHER = "other"


# Labels used by the clinic ledger spreadsheets and the legacy dashboard
CATEGORY_ALIASES = {
    "가철": Category.REMOVABLE,
    "고정": Category.FIXED,
    "임플": Category.IMPLANT,
    "임수": Category.IMPLANT_SURGERY,
}

# users table counter column per category
CATEGORY_COUNTER_COLUMNS = {
    Category.REMOVABLE: "case_count_removable",
    Category.FIXED: "case_count_fixed",
    Category.IMPLANT: "case_count_implant",
    Category.IMPLANT_SURGERY: "case_count_implant_surgery",
}


def parse_category(value) -> Category | None:
    """Map a raw category cell to a Category, or None when blank/unknown."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if text in CATEGORY_ALIASES:
        return CATEGORY_ALIASES[text]
    try:
        return Category(text.lower())
    except ValueError:
        return None
