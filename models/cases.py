from sqlalchemy import JSON, Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from database.database import Base
from models.enums import AcquisitionMethod, CaseStatus
from models.user import User


class Case(Base):
    __tablename__ = "cases"

    case_id = Column(String, primary_key=True, nullable=False, index=True)
    datetime = Column(DateTime, nullable=False, index=True)
    category = Column(String, nullable=False, index=True)
    assigned_resident = Column(String, nullable=False)
    # Not a foreign key: admins may rename patients independently of old cases
    patient_number = Column(String, nullable=False, index=True)
    patient_name = Column(String, nullable=False)
    assigned_student1 = Column(
        String, ForeignKey(User.user_id, ondelete="SET NULL"), nullable=True
    )
    assigned_student2 = Column(
        String, ForeignKey(User.user_id, ondelete="SET NULL"), nullable=True
    )
    case_status = Column(String, nullable=False, default=CaseStatus.IN_PROGRESS.value)
    acquisition_method = Column(
        String, nullable=False, default=AcquisitionMethod.ASSIGNMENT.value
    )
    treatment_details = Column(String, nullable=True)
    note = Column(String, nullable=True)
    # Append-only; always assign a new list so the JSON column is flagged dirty
    change_log = Column(JSON, nullable=False, default=list)
    time_created = Column(String, nullable=True)
    time_updated = Column(String, nullable=True)

    student1 = relationship("User", foreign_keys=[assigned_student1])
    student2 = relationship("User", foreign_keys=[assigned_student2])
