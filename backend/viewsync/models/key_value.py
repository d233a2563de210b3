from sqlalchemy import Column, Integer, String, LargeBinary, Index
from viewsync.database import Base
from datetime import datetime

class KeyValueEntry(Base):
    """
    One persisted key of the key-value substrate.
    Values are opaque bytes; the id keeps insertion order for key listings.
    """
    __tablename__ = "kv_entries"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(512), nullable=False, unique=True)
    value = Column(LargeBinary, nullable=False)
    
    # Timestamps (using String for ISO format compatibility)
    created_at = Column(String, nullable=False, default=lambda: datetime.utcnow().isoformat())
    updated_at = Column(String, nullable=False, default=lambda: datetime.utcnow().isoformat(),
                       onupdate=lambda: datetime.utcnow().isoformat())
    
    __table_args__ = (
        Index('idx_kv_entries_key', 'key'),
    )
    
    def __repr__(self):
        return f"<KeyValueEntry(id={self.id}, key={self.key}, bytes={len(self.value or b'')})>"
