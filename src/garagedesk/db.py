from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

import psycopg
from psycopg import Connection
from psycopg.rows import dict_row

from .config import DbConfig

logger = logging.getLogger(__name__)


class DbError(Exception):
    pass


@dataclass(frozen=True)
class Db:
    cfg: DbConfig

    def connect(self) -> Connection:
        try:
            return psycopg.connect(
                host=self.cfg.host,
                port=self.cfg.port,
                dbname=self.cfg.name,
                user=self.cfg.user,
                password=self.cfg.password,
                sslmode=self.cfg.sslmode,
                row_factory=dict_row,
            )
        except psycopg.OperationalError as e:
            logger.error("Database connection to %s:%s/%s failed: %s", self.cfg.host, self.cfg.port, self.cfg.name, e)
            raise DbError(
                "Cannot connect to database. Check config.toml [db] and that PostgreSQL is running."
            ) from e

    @contextmanager
    def session(self) -> Iterator[Connection]:
        conn = self.connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """One unit of work: committed on success, rolled back on any exception."""
        with self.session() as conn:
            with conn.transaction():
                yield conn
