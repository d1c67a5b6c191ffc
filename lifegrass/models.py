from sqlalchemy import Column, DateTime, LargeBinary, String, func

from .database import Base


# ---------------------------
# OBJECT STORE ROW
# ---------------------------
class StoredObject(Base):
    """One object of the SQL-backed object store (key -> bytes)."""

    __tablename__ = "stored_object"

    key = Column(String(255), primary_key=True)
    body = Column(LargeBinary, nullable=False)
    content_type = Column(String(64), nullable=False, default="application/json")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<StoredObject {self.key}>"
