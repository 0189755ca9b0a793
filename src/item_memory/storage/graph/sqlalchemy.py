"""
SQLAlchemy-based graph replica implementation.

Persists the last-write-wins registers of the local replica in any
SQLAlchemy-compatible database (SQLite on device, PostgreSQL on a relay
host, etc.), one row per (node, field).
"""

import json
import logging
from contextlib import contextmanager
from typing import Dict, List, Optional

from sqlalchemy import Column, Engine, Float, String, Text
from sqlalchemy.orm import Session, declarative_base

from item_memory.models import FieldRegister

logger = logging.getLogger(__name__)

# Create SQLAlchemy Base
Base = declarative_base()


class FieldRegisterDB(Base):
    """SQLAlchemy model for one field register."""

    __tablename__ = "field_registers"

    node_id = Column(String, primary_key=True)
    field = Column(String, primary_key=True)

    # JSON serialized register value
    value_json = Column(Text, nullable=False, default="null")
    timestamp = Column(Float, nullable=False)
    peer_id = Column(String, nullable=False)

    def to_register(self) -> FieldRegister:
        """Convert database model to FieldRegister."""
        return FieldRegister(
            value=json.loads(self.value_json),
            timestamp=self.timestamp,
            peer_id=self.peer_id,
        )


class SQLAlchemyNodeStore:
    """
    SQLAlchemy-based graph replica.

    Example:
        from sqlalchemy import create_engine
        engine = create_engine("sqlite:///replica.db")
        store = SQLAlchemyNodeStore(engine)
        store.create_tables()
    """

    def __init__(self, engine: Engine):
        """
        Initialize the SQLAlchemy node store.

        Args:
            engine: SQLAlchemy engine for database connection
        """
        self.engine = engine
        logger.info(f"SQLAlchemyNodeStore initialized (engine={engine.url})")

    @contextmanager
    def _session(self):
        """Context manager for database sessions with automatic commit/rollback."""
        session = Session(self.engine)
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            session.close()

    def create_tables(self):
        """Create database tables if they don't exist."""
        Base.metadata.create_all(self.engine)
        logger.info("Database tables created/verified")

    def get_register(self, node_id: str, field: str) -> Optional[FieldRegister]:
        with self._session() as session:
            row = session.get(FieldRegisterDB, (node_id, field))
            return row.to_register() if row else None

    def set_register(self, node_id: str, field: str, register: FieldRegister) -> None:
        with self._session() as session:
            row = session.get(FieldRegisterDB, (node_id, field))
            if row is None:
                row = FieldRegisterDB(node_id=node_id, field=field)
                session.add(row)

            row.value_json = json.dumps(register.value)
            row.timestamp = register.timestamp
            row.peer_id = register.peer_id

    def get_node(self, node_id: str) -> Optional[Dict[str, FieldRegister]]:
        with self._session() as session:
            rows = session.query(FieldRegisterDB).filter(FieldRegisterDB.node_id == node_id).all()

            if not rows:
                return None

            return {row.field: row.to_register() for row in rows}

    def node_ids(self) -> List[str]:
        with self._session() as session:
            rows = (
                session.query(FieldRegisterDB.node_id)
                .distinct()
                .order_by(FieldRegisterDB.node_id)
                .all()
            )
            return [row[0] for row in rows]

    def clear(self) -> int:
        with self._session() as session:
            count = session.query(FieldRegisterDB.node_id).distinct().count()
            session.query(FieldRegisterDB).delete()

            logger.info(f"Cleared graph replica ({count} nodes)")
            return count
