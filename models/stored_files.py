from core.database import Base
from sqlalchemy import (Column, Integer, String, ForeignKey)
from sqlalchemy.orm import relationship
from .mixins import CreatedAtMixin

class StoredFile(Base, CreatedAtMixin):
    """Design files and payment-proof images kept in the blob store."""
    __tablename__ = "stored_files"

    #pk
    id = Column(Integer, primary_key=True, index=True)

    #fk
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    #relationships
    owner = relationship("User", back_populates="files")

    original_filename = Column(String, nullable=False)
    storage_path = Column(String, nullable=False, unique=True)
    content_type = Column(String)
    file_size = Column(Integer, nullable=False)
