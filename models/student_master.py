from sqlalchemy import Boolean, Column, ForeignKey, String

from database.database import Base
from models.user import User


class StudentMaster(Base):
    """Canonical student roster, linked to a user once the student signs up."""

    __tablename__ = "student_master"

    id = Column(String, primary_key=True, nullable=False, index=True)
    number = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    is_registered = Column(Boolean, nullable=False, default=False)
    registered_user_id = Column(
        String, ForeignKey(User.user_id, ondelete="SET NULL"), nullable=True
    )
    time_created = Column(String, nullable=True)
    time_updated = Column(String, nullable=True)
