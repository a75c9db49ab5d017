"""
Named counters incremented inside the caller's transaction.

Used for application numbers ("PAT-2026") and as a per-scope write lock for
incentive policies ("policy:ipr/patent"). The increment is a single UPDATE,
so concurrent writers queue on the row until the first one commits.
"""

from sqlalchemy import Integer, String, exists, insert, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from drd.kernel.models.base import Base


class Counter(Base):
    __tablename__ = "counters"

    key: Mapped[str] = mapped_column(String(120), primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Counter {self.key}={self.last_value}>"


async def next_value(session: AsyncSession, key: str) -> int:
    """
    Increment a counter and return its new value, creating it at 1.

    Raises:
        sqlalchemy.exc.IntegrityError: two transactions created the same
            counter at once; the loser must roll back
    """
    await session.execute(
        insert(Counter).from_select(
            ["key", "last_value"],
            select(literal(key), literal(0)).where(~exists().where(Counter.key == key)),
        )
    )
    await session.execute(
        update(Counter)
        .where(Counter.key == key)
        .values(last_value=Counter.last_value + 1)
        .execution_options(synchronize_session=False)
    )
    return await session.scalar(select(Counter.last_value).where(Counter.key == key))
