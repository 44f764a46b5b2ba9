import logging

from fastapi import HTTPException, status

from app.core.errors import Conflict
from app.core.security import create_access_token, get_password_hash, verify_password
from app.models.user import User
from app.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, user_repo: UserRepository):
        self.user_repo = user_repo

    def register(self, user_data) -> User:
        email = user_data.email.strip().lower()
        existing = self.user_repo.get_by_email(email)
        if existing:
            raise Conflict("Email already registered")

        new_user = User(
            name=user_data.name,
            email=email,
            hashed_password=get_password_hash(user_data.password),
            is_active=True,
        )
        user = self.user_repo.create(new_user)
        logger.info(f"User {user.id} registered")
        return user

    def login(self, email: str, password: str) -> dict:
        user = self.user_repo.get_by_email(email)
        if not user or not verify_password(password, user.hashed_password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect email or password",
                headers={"WWW-Authenticate": "Bearer"},
            )

        if not user.is_active:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")

        token = create_access_token({"sub": str(user.id)})
        logger.info(f"User {user.id} logged in")
        return {
            "access_token": token,
            "token_type": "bearer",
            "user": user,
        }
