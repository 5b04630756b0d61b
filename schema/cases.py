from datetime import datetime as DateTime

from pydantic import AliasChoices, BaseModel, Field, field_validator

from models.enums import (
    AcquisitionMethod,
    CaseStatus,
    Category,
    FailureReason,
    parse_category,
)


def _category(value):
    if value is None or isinstance(value, Category):
        return value
    category = parse_category(value)
    if category is None:
        raise ValueError(f"Unknown category: {value}")
    return category


class CaseCreateRequest(BaseModel):
    datetime: DateTime
    category: Category
    assigned_resident: str = Field(..., min_length=1)
    patient_number: str = Field(..., min_length=1)
    patient_name: str = Field(..., min_length=1)
    assigned_student1: str | None = None
    assigned_student2: str | None = None
    treatment_details: str | None = None
    note: str | None = None
    force: bool = False

    @field_validator("category", mode="before")
    @classmethod
    def parse_category_alias(cls, value):
        return _category(value)


class StatusUpdateRequest(BaseModel):
    status: CaseStatus
    reason: FailureReason | None = None


class AdminCaseUpdateRequest(BaseModel):
    datetime: DateTime | None = None
    category: Category | None = None
    assigned_resident: str | None = None
    patient_number: str | None = None
    patient_name: str | None = None
    assigned_student1: str | None = None
    assigned_student2: str | None = None
    case_status: CaseStatus | None = None
    acquisition_method: AcquisitionMethod | None = None
    treatment_details: str | None = None
    note: str | None = None

    @field_validator("category", mode="before")
    @classmethod
    def parse_category_alias(cls, value):
        return _category(value)


class TransferRequest(BaseModel):
    case_id: str
    to_student_id: str
    note: str | None = None


class ExchangeRequest(BaseModel):
    my_case_id: str
    their_case_id: str
    student_id: str


class ImportRow(BaseModel):
    """One parsed ledger spreadsheet row; the clinic's Korean headers are accepted."""

    reservation_date: str | None = Field(
        None, validation_alias=AliasChoices("reservation_date", "예약일시")
    )
    reservation_time: str | None = Field(
        None, validation_alias=AliasChoices("reservation_time", "예약시간")
    )
    patient_number: str | None = Field(
        None, validation_alias=AliasChoices("patient_number", "진료번호")
    )
    patient_name: str | None = Field(
        None, validation_alias=AliasChoices("patient_name", "환자명")
    )
    doctor: str | None = Field(None, validation_alias=AliasChoices("doctor", "예약의사"))
    treatment_details: str | None = Field(
        None, validation_alias=AliasChoices("treatment_details", "진료내역")
    )
    category: str | None = Field(None, validation_alias=AliasChoices("category", "분류"))

    @field_validator("*", mode="before")
    @classmethod
    def as_text(cls, value):
        if value is None:
            return None
        return str(value).strip()


class ImportRequest(BaseModel):
    rows: list[ImportRow]
