
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, func
from docgate.db.session import Base


class Resident(Base):
    __tablename__ = "residents"
    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class Billing(Base):
    __tablename__ = "billings"
    id = Column(Integer, primary_key=True, index=True)
    resident_id = Column(Integer, ForeignKey("residents.id"), nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())
