"""
Position Store
--------------
Persisted optimizer state keyed by strategy address. Updates are conditional
on the row version so two writers can never silently overwrite each other.
"""

import contextlib
import threading
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterator, Optional

from loguru import logger
from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    create_engine,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from harvester.core.exceptions import PersistenceError, StaleWriteError

APY_QUANTUM = Decimal("0.01")

metadata = MetaData()

positions_table = Table(
    "positions",
    metadata,
    Column("strategy_address", String(42), primary_key=True),
    Column("split_mtoken", Integer, nullable=False),
    Column("split_vault", Integer, nullable=False),
    Column("strategy_type", String(50), nullable=False, server_default="usdc_stablecoin"),
    Column("last_updated", DateTime(timezone=True), nullable=False),
    Column("apy", Numeric(10, 2), nullable=False),
    Column("version", Integer, nullable=False, server_default="1"),
)


@dataclass(frozen=True)
class Position:
    """Optimizer state for one strategy."""
    strategy_address: str
    split_mtoken: int
    split_vault: int
    strategy_type: str
    apy: Decimal
    last_updated: datetime
    version: int = 0

    @property
    def split(self) -> tuple[int, int]:
        return (self.split_mtoken, self.split_vault)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_store_engine(database_url: str) -> Engine:
    """Engine for the position store; in-memory SQLite shares one connection."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, pool_pre_ping=True)


class PositionStore:
    """get / insert / conditional update over the positions table."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    @classmethod
    def from_url(cls, database_url: str) -> "PositionStore":
        return cls(create_store_engine(database_url))

    def initialize(self) -> None:
        """Create the positions table if it does not exist.

        Raises:
            PersistenceError: If the database is unreachable.
        """
        try:
            metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to initialize position store: {e}")
        logger.info("✅ Position store initialized")

    @contextlib.contextmanager
    def lock(self, strategy_address: str) -> Iterator[None]:
        """In-process advisory lock for one strategy's read-decide-write."""
        key = strategy_address.lower()
        with self._guard:
            key_lock = self._locks.setdefault(key, threading.Lock())
        with key_lock:
            yield

    def get(self, strategy_address: str) -> Optional[Position]:
        query = select(positions_table).where(
            positions_table.c.strategy_address == strategy_address.lower()
        )
        try:
            with self.engine.connect() as conn:
                row = conn.execute(query).mappings().first()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read position: {e}", {"strategy": strategy_address})

        if row is None:
            return None
        return Position(
            strategy_address=row["strategy_address"],
            split_mtoken=row["split_mtoken"],
            split_vault=row["split_vault"],
            strategy_type=row["strategy_type"],
            apy=Decimal(row["apy"]),
            last_updated=row["last_updated"],
            version=row["version"],
        )

    def insert(self, position: Position) -> Position:
        """Insert a new row at version 1.

        Raises:
            StaleWriteError: If another writer created the row first.
        """
        stored = replace(
            position,
            strategy_address=position.strategy_address.lower(),
            apy=position.apy.quantize(APY_QUANTUM),
            version=1,
        )
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(positions_table).values(**asdict(stored)))
        except IntegrityError as e:
            raise StaleWriteError("Position already exists", {"strategy": stored.strategy_address, "error": str(e.orig)})
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to insert position: {e}", {"strategy": stored.strategy_address})
        return stored

    def update(self, position: Position) -> Position:
        """Write position if the stored row is still at position.version.

        Raises:
            StaleWriteError: If the row changed since it was read.
        """
        stored = replace(
            position,
            strategy_address=position.strategy_address.lower(),
            apy=position.apy.quantize(APY_QUANTUM),
            version=position.version + 1,
        )
        statement = (
            update(positions_table)
            .where(positions_table.c.strategy_address == stored.strategy_address)
            .where(positions_table.c.version == position.version)
            .values(
                split_mtoken=stored.split_mtoken,
                split_vault=stored.split_vault,
                strategy_type=stored.strategy_type,
                apy=stored.apy,
                last_updated=stored.last_updated,
                version=stored.version,
            )
        )
        try:
            with self.engine.begin() as conn:
                result = conn.execute(statement)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update position: {e}", {"strategy": stored.strategy_address})

        if result.rowcount != 1:
            raise StaleWriteError(
                "Position changed since it was read",
                {"strategy": stored.strategy_address, "expected_version": position.version},
            )
        return stored
