# app/crud/user.py
import logging
from datetime import datetime, time
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import AuthFailure, DuplicateEmail, ValidationError
from app.core.logging import mask_email
from app.core.security import burn_password_check, get_password_hash, verify_password
from app.crud.base import CRUDBase, store_transaction
from app.db.models.user import User
from app.schemas.user import UserCreate, UserUpdate

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CRUDUser(CRUDBase[User, UserCreate, UserUpdate]):
    """Identity store for registered visitors."""

    async def get_by_email(self, db: AsyncSession, *, email: str) -> Optional[User]:
        result = await db.execute(
            select(User).where(User.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def register(
            self,
            db: AsyncSession,
            *,
            name: str,
            email: str,
            password: str
    ) -> User:
        """Create a user with an argon2 password hash, DuplicateEmail if taken"""
        email = normalize_email(email)
        if len(password) < settings.PASSWORD_MIN_LENGTH:
            raise ValidationError(
                f"Le mot de passe doit contenir au moins {settings.PASSWORD_MIN_LENGTH} caractères"
            )
        if await self.get_by_email(db, email=email):
            raise DuplicateEmail(email)

        db_obj = User(
            name=name.strip(),
            email=email,
            password_hash=get_password_hash(password),
        )
        try:
            async with store_transaction(db):
                db.add(db_obj)
        except IntegrityError as exc:
            raise DuplicateEmail(email) from exc

        await db.refresh(db_obj)
        logger.info(f"👤 User registered: {mask_email(email)}")
        return db_obj

    async def authenticate(self, db: AsyncSession, *, email: str, password: str) -> User:
        """Return the user or raise AuthFailure; unknown emails cost a full hash check too"""
        user = await self.get_by_email(db, email=email)
        if user is None:
            burn_password_check(password)
            logger.info(f"🔒 Failed login for {mask_email(email)}")
            raise AuthFailure("unknown email")
        if not verify_password(password, user.password_hash):
            logger.info(f"🔒 Failed login for {mask_email(email)}")
            raise AuthFailure("password mismatch")
        return user

    async def increment_question_usage(self, db: AsyncSession, *, email: str) -> None:
        """Atomic +1; silently does nothing when the user is gone"""
        async with store_transaction(db):
            result = await db.execute(
                update(User)
                .where(User.email == normalize_email(email))
                .values(questions_used=User.questions_used + 1, last_question_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
        if result.rowcount:
            logger.info(f"📈 Question usage incremented for {mask_email(email)}")

    async def reset_question_usage(self, db: AsyncSession, *, email: str) -> None:
        async with store_transaction(db):
            result = await db.execute(
                update(User)
                .where(User.email == normalize_email(email))
                .values(questions_used=0)
                .execution_options(synchronize_session=False)
            )
        if result.rowcount:
            logger.info(f"🔄 Question usage reset for {mask_email(email)}")

    async def list_users(self, db: AsyncSession, *, limit: int = 100, offset: int = 0) -> List[User]:
        result = await db.execute(
            select(User).order_by(User.registered_at.desc()).offset(offset).limit(limit)
        )
        return list(result.scalars().all())

    async def user_stats(self, db: AsyncSession) -> Dict[str, Any]:
        today_start = datetime.combine(datetime.utcnow().date(), time.min)
        row = (await db.execute(
            select(
                func.count(User.id),
                func.count(User.id).filter(User.registered_at >= today_start),
                func.count(User.id).filter(User.subscription_status == "premium"),
                func.coalesce(func.sum(User.questions_used), 0),
            )
        )).one()
        return {
            "total_users": row[0],
            "today_signups": row[1],
            "premium_users": row[2],
            "total_questions": int(row[3]),
        }


# Create instance
crud_user = CRUDUser(User)
