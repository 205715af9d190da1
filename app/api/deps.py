import logging
from typing import Generator, Annotated, Optional
from fastapi import Depends, HTTPException, status, Query
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from sqlalchemy.orm import Session
from pydantic import ValidationError, BaseModel
from typing import TypeVar, Generic, Sequence

from app.database import SessionLocal
from app.config import settings
from app.models.user import User
from app.services.hierarchy import HierarchyRepository
from app.services.image_store import ImageStore, get_image_store

logger = logging.getLogger(__name__)

# 1. DATABASE DEPENDENCY
def get_db() -> Generator:
    try:
        db = SessionLocal()
        yield db
    finally:
        db.close()


# 2. PAGINATION DEPENDENCY
T = TypeVar("T")


class PaginationParams:
    def __init__(
            self,
            page: int = Query(1, ge=1, description="Page number"),
    ):
        self.page = page
        self.size = settings.page_size
        self.skip = (page - 1) * self.size


class PaginatedResponse(BaseModel, Generic[T]):
    total: int
    page: int
    size: int
    items: Sequence[T]


# 3. AUTH DEPENDENCY
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


async def get_current_user(
        db: Annotated[Session, Depends(get_db)],
        token: Annotated[Optional[str], Depends(oauth2_scheme)]
) -> User:

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not token:
        raise credentials_exception

    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        email: str = payload.get("sub")
        if email is None:
            raise credentials_exception
    except (JWTError, ValidationError):
        raise credentials_exception

    user = db.query(User).filter(User.email == email).first()
    if user is None or not user.is_active:
        raise credentials_exception

    return user


async def get_current_active_superuser(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """
    Dependency that ensures the user is a Superuser (Admin).
    """
    if not current_user.is_superuser:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden"
        )
    return current_user


SessionDep = Annotated[Session, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(get_current_active_superuser)]
ImageStoreDep = Annotated[ImageStore, Depends(get_image_store)]


# --- HIERARCHY DEPENDENCY ---
def get_repository(db: SessionDep, image_store: ImageStoreDep) -> HierarchyRepository:
    return HierarchyRepository(db, image_store)


RepositoryDep = Annotated[HierarchyRepository, Depends(get_repository)]
