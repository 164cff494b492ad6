from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import sessionmaker, selectinload
from sqlalchemy.exc import SQLAlchemyError

import logging
import os
import dotenv

logger = logging.getLogger(__name__)

dotenv.load_dotenv()
DATABASE_HOST = os.environ.get("DATABASE_HOST", "localhost")
DATABASE_PORT = os.environ.get("DATABASE_PORT", "5432")
DATABASE_USER = os.environ.get("DATABASE_USER", "user")
DATABASE_PASSWORD = os.environ.get("DATABASE_PASSWORD", "password")
DATABASE_NAME = os.environ.get("DATABASE_NAME", "dbname")
DATABASE_URL = os.environ.get(
    "DATABASE_URL",
    f"postgresql+asyncpg://{DATABASE_USER}:{DATABASE_PASSWORD}@{DATABASE_HOST}:{DATABASE_PORT}/{DATABASE_NAME}",
)
DATABASE_ECHO = os.environ.get("DATABASE_ECHO", "false").lower() == "true"

engine = create_async_engine(DATABASE_URL, echo=DATABASE_ECHO)
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def _relationship_options(model_class, load_relationships: list[str] = None) -> list:
    if not load_relationships:
        return []
    return [
        selectinload(getattr(model_class, rel))
        for rel in load_relationships
        if hasattr(model_class, rel)
    ]


async def create_item(session: AsyncSession, item_data: dict, model_class):
    try:
        db_item = model_class(**item_data)
        session.add(db_item)
        await session.commit()
        await session.refresh(db_item)
        return db_item
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Error creating {model_class.__name__}: {e}")
        return None
    except Exception as e:  # Catch other potential errors
        await session.rollback()
        logger.error(f"Unexpected error creating {model_class.__name__}: {e}")
        return None


async def get_item_by_id(
    session: AsyncSession,
    item_id: int,
    model_class,
    load_relationships: list[str] = None,
):
    try:
        stmt = select(model_class)
        options = _relationship_options(model_class, load_relationships)
        if options:
            stmt = stmt.options(*options)
        stmt = stmt.where(model_class.id == item_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error(f"Error getting {model_class.__name__} by ID {item_id}: {e}")
        return None


async def get_all_items(
    session: AsyncSession,
    model_class,
    skip: int = 0,
    limit: int = 100,
    load_relationships: list[str] = None,
) -> list:
    try:
        stmt = select(model_class).offset(skip).limit(limit)
        options = _relationship_options(model_class, load_relationships)
        if options:
            stmt = stmt.options(*options)
        result = await session.execute(stmt)
        return result.scalars().all()
    except SQLAlchemyError as e:
        logger.error(f"Error getting all {model_class.__name__}s: {e}")
        return []


async def get_items_by_filters(
    session: AsyncSession,
    model_class,
    skip: int = 0,
    limit: int = 100,
    load_relationships: list[str] = None,
    **filters,
) -> list:
    try:
        stmt = select(model_class)
        for column_name, value in filters.items():
            if hasattr(model_class, column_name):
                stmt = stmt.where(getattr(model_class, column_name) == value)
            else:
                logger.warning(
                    f"Filter key '{column_name}' not found in model {model_class.__name__}"
                )

        options = _relationship_options(model_class, load_relationships)
        if options:
            stmt = stmt.options(*options)

        stmt = stmt.order_by(model_class.id).offset(skip).limit(limit)
        result = await session.execute(stmt)
        return result.scalars().all()
    except SQLAlchemyError as e:
        logger.error(f"Error getting {model_class.__name__} by filters: {e}")
        return []


async def count_items(session: AsyncSession, model_class, **filters) -> int:
    stmt = select(func.count()).select_from(model_class)
    for column_name, value in filters.items():
        stmt = stmt.where(getattr(model_class, column_name) == value)
    result = await session.execute(stmt)
    return result.scalar_one()


async def update_item(
    session: AsyncSession, item_id: int, update_data: dict, model_class
):
    try:
        db_item = await get_item_by_id(session, item_id, model_class)
        if db_item is None:
            return None

        for key, value in update_data.items():
            if hasattr(db_item, key):
                setattr(db_item, key, value)
            else:
                logger.warning(
                    f"Attribute '{key}' not found in model {model_class.__name__} during update."
                )

        await session.commit()
        await session.refresh(db_item)
        return db_item
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Error updating {model_class.__name__} with ID {item_id}: {e}")
        return None
    except Exception as e:
        await session.rollback()
        logger.error(
            f"Unexpected error updating {model_class.__name__} with ID {item_id}: {e}"
        )
        return None


async def increment_columns(
    session: AsyncSession,
    item_id: int,
    deltas: dict,
    model_class,
    expressions: dict = None,
) -> None:
    """Adds each delta to its column in a single UPDATE without committing.

    `expressions` are assigned as-is; they may reference the pre-update values
    of any column. Errors propagate so the caller can roll back the
    surrounding transaction.
    """
    values = dict(expressions or {})
    for key, delta in deltas.items():
        column = getattr(model_class, key)
        values[key] = column + delta
    stmt = (
        update(model_class)
        .where(model_class.id == item_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await session.execute(stmt)




def _column_condition(column, value):
    if value is None:
        return column.is_(None)
    if isinstance(value, (list, tuple, set)):
        return column.in_(list(value))
    return column == value


async def claim_item(
    session: AsyncSession,
    item_id: int,
    model_class,
    conditions: dict,
    values: dict,
) -> bool:
    """Writes `values` only while the row still matches `conditions`.

    Runs as a single conditional UPDATE, so of several concurrent callers at
    most one sees True. A None condition means IS NULL, a list means IN.
    Does not commit.
    """
    stmt = (
        update(model_class)
        .where(
            model_class.id == item_id,
            *(
                _column_condition(getattr(model_class, key), value)
                for key, value in conditions.items()
            ),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount == 1


async def delete_items_by_filters(session: AsyncSession, model_class, **filters) -> int:
    """Deletes matching rows without committing; returns how many went."""
    stmt = delete(model_class).execution_options(synchronize_session=False)
    for column_name, value in filters.items():
        stmt = stmt.where(getattr(model_class, column_name) == value)
    result = await session.execute(stmt)
    return result.rowcount
