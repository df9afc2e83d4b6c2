
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, func
from docgate.db.session import Base


class Document(Base):
    __tablename__ = "documents"
    id = Column(Integer, primary_key=True, index=True)
    owner_type = Column(String(20), nullable=False, default="resident")
    resident_id = Column(Integer, ForeignKey("residents.id"), nullable=True, index=True)
    billing_id = Column(Integer, ForeignKey("billings.id"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String(100), nullable=False)

    # StorageRef columns: storage_kind selects which of the others is meaningful
    storage_kind = Column(String(10), nullable=False)
    remote_id = Column(String(255), nullable=True)
    remote_url = Column(String(1000), nullable=True)
    local_path = Column(String(1000), nullable=True, index=True)

    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
