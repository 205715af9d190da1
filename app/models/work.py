from sqlalchemy import Column, Integer, String, ForeignKey, Text, DateTime, Boolean, JSON, Index
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import enum
from app.database import Base


class WorkStatus(int, enum.Enum):
    # ANY is a query wildcard, never stored
    ANY = 0
    ONGOING = 1
    ENDED = 2


class Genre(str, enum.Enum):
    ACTION = "action"
    ROMANCE = "romance"
    YURI = "yuri"
    BOYS_LOVE = "boysLove"
    SCHOOL_LIFE = "schoolLife"
    ADVENTURE = "adventure"
    HAREM = "harem"
    SPECULATIVE_FICTION = "speculativeFiction"
    WAR = "war"
    SUSPENSE = "suspense"
    FAN_FICTION = "fanFiction"
    COMEDY = "comedy"
    MAGIC = "magic"
    HORROR = "horror"
    HISTORICAL = "historical"
    SPORTS = "sports"
    MATURE = "mature"
    MECHA = "mecha"
    OTOKONOKO = "otokonoko"


# Query wildcard for the genre filter
ALL_GENRES = "all"


class Work(Base):
    """A single manga title, top of the content tree."""
    __tablename__ = "works"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=True, index=True)
    status = Column(Integer, nullable=False, default=WorkStatus.ONGOING.value, index=True)
    description = Column(Text, nullable=True)

    # Ordered lists; genres hold Genre values
    authors = Column(JSON, nullable=False, default=list)
    genres = Column(JSON, nullable=False, default=list)

    remarks = Column(Text, nullable=False, default="")

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # Groups are hard-deleted with the work. The cover is only unlinked and left to the reclaimer.
    chapter_groups = relationship("ChapterGroup", back_populates="work", cascade="all, delete-orphan",
                                  order_by="[ChapterGroup.sequence, ChapterGroup.id]")
    cover = relationship("Image", back_populates="manga", uselist=False)


class ChapterGroup(Base):
    """Named, ordered collection of chapters (a volume, a scanlation group...)"""
    __tablename__ = "chapter_groups"

    __table_args__ = (
        Index('idx_chapter_group_work_sequence', 'work_id', 'sequence'),
    )

    id = Column(Integer, primary_key=True, index=True)
    work_id = Column(Integer, ForeignKey("works.id", ondelete="CASCADE"), nullable=False)
    title = Column(String, nullable=True)
    sequence = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    work = relationship("Work", back_populates="chapter_groups")
    chapters = relationship("Chapter", back_populates="group", cascade="all, delete-orphan",
                            order_by="[Chapter.sequence, Chapter.id]")


class Chapter(Base):
    __tablename__ = "chapters"

    __table_args__ = (
        Index('idx_chapter_group_sequence', 'group_id', 'sequence'),
    )

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("chapter_groups.id", ondelete="CASCADE"), nullable=False)
    title = Column(String, nullable=True)
    sequence = Column(Integer, nullable=False, default=0)
    locked = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), index=True)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    group = relationship("ChapterGroup", back_populates="chapters")

    # No delete cascade: deleting a chapter detaches its pages (chapter_id -> NULL)
    images = relationship("Image", back_populates="chapter", order_by="[Image.sequence, Image.id]")
