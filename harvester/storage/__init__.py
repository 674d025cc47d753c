"""Persisted optimizer state."""

from .positions import Position, PositionStore, create_store_engine, positions_table

__all__ = ["Position", "PositionStore", "create_store_engine", "positions_table"]
