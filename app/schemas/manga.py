from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Any

from app.models.work import WorkStatus, Genre

# Older admin clients send authors/genres joined with this
LEGACY_DELIMITER = "|"


def _split_legacy_list(value: Any) -> Any:
    if isinstance(value, str):
        return [item for item in value.split(LEGACY_DELIMITER) if item]
    return value


def _dedupe(values: List[Any]) -> List[Any]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


class WorkFields(BaseModel):
    """Scalar fields shared by create and edit. None means 'leave as is'."""
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    status: Optional[WorkStatus] = None
    description: Optional[str] = None
    authors: Optional[List[str]] = None
    genres: Optional[List[Genre]] = None
    remarks: Optional[str] = None

    # Base64 encoded raster image
    cover: Optional[str] = None

    @field_validator("authors", "genres", mode="before")
    @classmethod
    def split_legacy(cls, value):
        return _split_legacy_list(value)

    @field_validator("authors")
    @classmethod
    def strip_authors(cls, value):
        if value is None:
            return value
        return [a.strip() for a in value if a and a.strip()]

    @field_validator("genres")
    @classmethod
    def unique_genres(cls, value):
        if value is None:
            return value
        return _dedupe(value)

    @field_validator("status")
    @classmethod
    def no_wildcard_status(cls, value):
        if value == WorkStatus.ANY:
            raise ValueError("status 0 (Any) is a query wildcard and cannot be stored")
        return value


class WorkCreate(WorkFields):
    status: WorkStatus = WorkStatus.ONGOING


# --- Nested edit shapes ---
# Entries without an id are ignored: edits never create rows.

class ImageEdit(BaseModel):
    id: Optional[int] = None
    sequence: Optional[int] = None


class ChapterEdit(BaseModel):
    id: Optional[int] = None
    title: Optional[str] = None
    sequence: Optional[int] = None
    locked: Optional[bool] = None
    images: Optional[List[ImageEdit]] = None


class ChapterGroupEdit(BaseModel):
    id: Optional[int] = None
    title: Optional[str] = None
    sequence: Optional[int] = None
    chapters: Optional[List[ChapterEdit]] = None


class WorkEdit(WorkFields):
    chapter_groups: Optional[List[ChapterGroupEdit]] = Field(default=None, alias="chapterGroups")


# --- Creation of children ---

class ChapterGroupCreate(BaseModel):
    title: Optional[str] = None
    # Omitted: placed after the current last sibling
    sequence: Optional[int] = None


class ChapterCreate(BaseModel):
    title: Optional[str] = None
    # Omitted: placed after the current last sibling
    sequence: Optional[int] = None


class ImageUpload(BaseModel):
    # Base64 encoded raster images, appended in this order
    images: List[str]
