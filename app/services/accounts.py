import logging
from sqlalchemy.orm import Session

from app.core.security import get_password_hash, verify_password
from app.models.user import User

logger = logging.getLogger(__name__)


def ensure_admin_user(db: Session, email: str, password: str) -> User:
    """
    Make sure the configured admin account exists, uses the configured
    password and is an admin. Safe to run on every startup.
    """
    user = db.query(User).filter(User.email == email).first()

    if user is None:
        user = User(
            email=email,
            hashed_password=get_password_hash(password),
            is_superuser=True,
            is_active=True
        )
        db.add(user)
        logger.info(f"Created admin user {email}")
    else:
        if not verify_password(password, user.hashed_password):
            user.hashed_password = get_password_hash(password)
            logger.info(f"Updated password of admin user {email}")
        if not user.is_superuser:
            user.is_superuser = True
            logger.info(f"Promoted {email} to admin")

    db.commit()
    db.refresh(user)
    return user
