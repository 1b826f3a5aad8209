# receipt_agent/services/database_service.py
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, joinedload
from sqlalchemy.pool import StaticPool

from receipt_agent.config import settings
from receipt_agent.models.database import Base, Transaction, User
from receipt_agent.models.schemas import TransactionCreate, UserContext

logger = logging.getLogger(__name__)


class DatabaseService:
    """Async tenant/user/transaction store"""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or settings.sqlalchemy_url
        self.engine = None
        self.async_session = None
        self._initialized = False

    async def initialize(self):
        """Create the engine and session factory"""
        if self._initialized:
            return

        try:
            if self.database_url.startswith("sqlite"):
                # in-memory databases must share one connection
                engine_options = dict(
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                )
            else:
                engine_options = dict(
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,
                    pool_recycle=3600,
                )

            self.engine = create_async_engine(
                self.database_url,
                echo=settings.debug,
                **engine_options
            )

            self.async_session = sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=True
            )

            self._initialized = True
            logger.info("Database service initialised")

        except Exception as e:
            logger.error(f"Database service initialisation failed: {e}")
            raise

    async def create_tables(self):
        await self.initialize()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session context manager, committing on success"""
        if not self._initialized:
            await self.initialize()

        session = self.async_session()
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Database operation failed, rolled back: {e}")
            raise
        finally:
            await session.close()

    async def check_connection(self) -> bool:
        try:
            async with self.get_session() as session:
                result = await session.execute(text("SELECT 1"))
                return result.scalar() == 1
        except Exception as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    async def get_user_by_phone(self, phone_number: str) -> Optional[UserContext]:
        """Look up a user with its tenant's subscription status.

        Returns None when no single user matches or the lookup fails.
        """
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(User)
                    .options(joinedload(User.tenant))
                    .where(User.phone_number == phone_number)
                )
                user = result.scalars().one_or_none()
                if user is None:
                    return None

                return UserContext(
                    id=user.id,
                    name=user.name,
                    tenant_id=user.tenant_id,
                    subscription_status=user.tenant.subscription_status if user.tenant else None,
                )

        except Exception as e:
            logger.error(f"User lookup failed for {phone_number}: {e}")
            return None

    async def create_transaction(self, data: TransactionCreate) -> str:
        """Insert a pending transaction and return its id"""
        try:
            async with self.get_session() as session:
                transaction = Transaction(**data.model_dump())
                session.add(transaction)
                await session.flush()
                transaction_id = transaction.id

            logger.info(f"Transaction created: {transaction_id}")
            return transaction_id

        except Exception as e:
            logger.error(f"Transaction insert failed: {e}")
            raise Exception(f"Database insert failed: {e}")

    async def close(self):
        """Dispose of the connection pool"""
        if self.engine:
            await self.engine.dispose()
            self._initialized = False
            logger.info("Database connection pool closed")
