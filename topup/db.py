from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from topup.core.settings import settings

log = logging.getLogger("topup.db")

# 表结构版本；结构变化时递增，并提供对应的迁移步骤
SCHEMA_VERSION = "1"


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    """数据库里统一存 naive UTC 时间。"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    future=True,
    connect_args={"timeout": settings.SQLITE_BUSY_TIMEOUT} if _is_sqlite else {},
)

if _is_sqlite:
    # sqlite 不支持 SELECT ... FOR UPDATE，驱动默认又要到第一条写语句才 BEGIN。
    # 改为事务一开始就 BEGIN IMMEDIATE 拿写锁，"读余额 -> 校验 -> 写" 整体串行。
    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        # WAL 不能在事务里切换，放在建连接时
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


AsyncSessionLocal = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_db() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        try:
            yield session
            # 如果业务逻辑没有抛出异常，执行 commit 持久化数据
            await session.commit()
        except Exception:
            # 如果发生错误，回滚事务
            await session.rollback()
            raise


class SchemaVersionMismatch(RuntimeError):
    pass


async def ensure_schema_version(session: AsyncSession) -> None:
    from sqlalchemy import select
    from topup.models.config import AppConfig

    row = (await session.execute(select(AppConfig).where(AppConfig.key == "schema_version"))).scalar_one_or_none()
    if row is None:
        session.add(AppConfig(key="schema_version", value=SCHEMA_VERSION))
        return
    if row.value != SCHEMA_VERSION:
        raise SchemaVersionMismatch(f"database schema {row.value}, expected {SCHEMA_VERSION}")


async def init_db() -> None:
    """启动时建表（新库的迁移步骤），校验表结构版本，并写入默认管理员。"""
    from topup.models import all_models  # noqa: F401
    from topup.services.admin_bootstrap import ensure_default_admin

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        await ensure_schema_version(session)
        await ensure_default_admin(session)
        await session.commit()
    log.info("database ready (schema %s)", SCHEMA_VERSION)
