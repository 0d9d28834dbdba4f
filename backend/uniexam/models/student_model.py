from ..db import Base
from sqlalchemy import Column, String


class StudentDB(Base):
    """Roster row. Imported from the registrar's CSV by an external tool."""
    __tablename__ = "students"

    student_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    section = Column(String, nullable=False, default="")
