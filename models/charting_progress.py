from sqlalchemy import Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from database.database import Base
from models.user import User


class ChartingProgress(Base):
    __tablename__ = "charting_progress"

    id = Column(String, primary_key=True, nullable=False, index=True)
    user_id = Column(
        String,
        ForeignKey(User.user_id, ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    charting_count = Column(Integer, nullable=False, default=0)
    diagnosis_total_count = Column(Integer, nullable=False, default=0)
    time_created = Column(String, nullable=True)
    time_updated = Column(String, nullable=True)

    user = relationship("User", back_populates="charting_progress")
