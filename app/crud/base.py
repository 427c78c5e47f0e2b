# app/crud/base.py
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Generic, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import TransientStoreError
from app.db.base import Base

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType")
UpdateSchemaType = TypeVar("UpdateSchemaType")


@asynccontextmanager
async def store_transaction(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Commit on success, roll back on any error.

    Connectivity failures are re-raised as TransientStoreError so callers
    can retry them; everything else propagates unchanged.
    """
    try:
        yield db
        await db.commit()
    except (OperationalError, InterfaceError) as exc:
        await db.rollback()
        logger.warning(f"Store connectivity error: {exc.__class__.__name__}")
        raise TransientStoreError(str(exc.orig or exc)) from exc
    except DBAPIError as exc:
        await db.rollback()
        if exc.connection_invalidated:
            raise TransientStoreError(str(exc.orig or exc)) from exc
        raise
    except BaseException:
        await db.rollback()
        raise


def dialect_insert(db: AsyncSession, model: Type[Base]):
    """INSERT construct supporting ``on_conflict_do_update`` for the bound dialect."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)


class CRUDBase(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    def __init__(self, model: Type[ModelType]):
        self.model = model

    async def get(self, db: AsyncSession, id: Any) -> Optional[ModelType]:
        result = await db.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

