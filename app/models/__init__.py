# Import all models here so SQLAlchemy can set up relationships
from app.models.work import Work, ChapterGroup, Chapter, WorkStatus, Genre
from app.models.image import Image
from app.models.user import User

# This ensures all models are loaded before relationships are configured
__all__ = [
    'Work', 'ChapterGroup', 'Chapter', 'Image',
    'WorkStatus', 'Genre',
    'User',
]
