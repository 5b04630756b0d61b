from sqlalchemy import Column, String

from database.database import Base


class Patient(Base):
    __tablename__ = "patients"

    patient_number = Column(String, nullable=False, primary_key=True, index=True)
    patient_name = Column(String, nullable=False)
    time_created = Column(String, nullable=True)
    time_updated = Column(String, nullable=True)
