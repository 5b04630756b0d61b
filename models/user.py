from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from database.database import Base


class User(Base):
    __tablename__ = "users"

    user_id = Column(String, nullable=False, primary_key=True, index=True)
    email = Column(String, nullable=False, unique=True)
    password = Column(String, nullable=False)
    number = Column(String, nullable=True, index=True)
    name = Column(String, nullable=True)
    role = Column(String, nullable=False)

    # Denormalized per-category case counters, refreshed by the analytics sync
    case_count_removable = Column(Integer, nullable=False, default=0)
    case_count_fixed = Column(Integer, nullable=False, default=0)
    case_count_implant = Column(Integer, nullable=False, default=0)
    case_count_implant_surgery = Column(Integer, nullable=False, default=0)
    total_cases = Column(Integer, nullable=False, default=0)
    last_case_sync = Column(String, nullable=True)

    time_created = Column(String, nullable=True)
    time_updated = Column(String, nullable=True)

    # Relationship to tokens (one-to-many)
    tokens = relationship("Token", back_populates="user", cascade="all, delete-orphan")

    charting_progress = relationship(
        "ChartingProgress",
        back_populates="user",
        cascade="all, delete-orphan",
        uselist=False,
    )
