from sqlalchemy import Column, Integer, ForeignKey, DateTime, Index
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.database import Base


class Image(Base):
    """
    A chapter page or a work cover, backed by one file named after its id.
    A row with neither chapter_id nor manga_id is an orphan waiting for the reclaimer.
    """
    __tablename__ = "images"

    __table_args__ = (
        Index('idx_image_chapter_sequence', 'chapter_id', 'sequence'),
        Index('idx_image_orphan', 'chapter_id', 'manga_id'),
    )

    id = Column(Integer, primary_key=True, index=True)
    sequence = Column(Integer, nullable=False, default=0)
    chapter_id = Column(Integer, ForeignKey("chapters.id", ondelete="SET NULL"), nullable=True)
    manga_id = Column(Integer, ForeignKey("works.id", ondelete="SET NULL"), nullable=True, unique=True)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    chapter = relationship("Chapter", back_populates="images")
    manga = relationship("Work", back_populates="cover")

    @property
    def is_orphan(self) -> bool:
        return self.chapter_id is None and self.manga_id is None
