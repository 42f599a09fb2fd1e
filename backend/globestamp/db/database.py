"""Database helpers and repositories for drawings and activity."""

from __future__ import annotations

import dataclasses
import datetime
import threading
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, cast

import psycopg2
import psycopg2.extensions
import psycopg2.extras

from globestamp.core import errors
from globestamp.db import models as db_models
from globestamp.services import realtime

if TYPE_CHECKING:
    from globestamp.core import config


class DrawingRepositoryProtocol(Protocol):
    """Protocol interface for storing and retrieving drawings.

    Implementations publish every committed insert on the ``drawings``
    table of the realtime bus.
    """

    def add(self, drawing: db_models.Drawing) -> db_models.Drawing: ...

    def get(self, drawing_id: str) -> db_models.Drawing | None: ...

    def recent(self, limit: int) -> list[db_models.Drawing]: ...

    def mark_enhanced(
        self,
        drawing_id: str,
        image_url: str,
    ) -> db_models.Drawing: ...


class ActivityRepositoryProtocol(Protocol):
    """Protocol interface for the append-only activity log.

    Implementations publish every committed insert on the ``activity``
    table of the realtime bus.
    """

    def add(self, activity: db_models.Activity) -> db_models.Activity: ...

    def recent(self, limit: int) -> list[db_models.Activity]: ...


T = TypeVar("T")


def _newest_first(records: list[T], limit: int) -> list[T]:
    ordered = sorted(
        records,
        key=lambda r: r.created_at,  # type: ignore[attr-defined]
        reverse=True,
    )
    return ordered[:limit]


class InMemoryDrawingRepository(DrawingRepositoryProtocol):
    """Simple in-memory drawing store for tests and local development."""

    def __init__(self, bus: realtime.RealtimeBus | None = None) -> None:
        self._store: dict[str, db_models.Drawing] = {}
        self._bus = bus
        self._lock = threading.Lock()

    def add(self, drawing: db_models.Drawing) -> db_models.Drawing:
        with self._lock:
            if drawing.id in self._store:
                raise errors.PersistenceError(
                    f"Drawing {drawing.id} already exists"
                )
            self._store[drawing.id] = drawing
        if self._bus is not None:
            self._bus.publish(realtime.DRAWINGS_TABLE, drawing)
        return drawing

    def get(self, drawing_id: str) -> db_models.Drawing | None:
        return self._store.get(drawing_id)

    def recent(self, limit: int) -> list[db_models.Drawing]:
        return _newest_first(list(self._store.values()), limit)

    def mark_enhanced(
        self,
        drawing_id: str,
        image_url: str,
    ) -> db_models.Drawing:
        """Flip ``enhanced`` and swap in the enhanced image URL.

        Raises:
            NotFound: If the drawing does not exist.
            Conflict: If the drawing was already enhanced.
        """
        with self._lock:
            drawing = self._store.get(drawing_id)
            if drawing is None:
                raise errors.NotFound(f"Drawing {drawing_id} not found")
            if drawing.enhanced:
                raise errors.Conflict(f"Drawing {drawing_id} already enhanced")
            updated = dataclasses.replace(
                drawing,
                image_url=image_url,
                enhanced=True,
                original_image_url=drawing.image_url,
            )
            self._store[drawing_id] = updated
        return updated


class InMemoryActivityRepository(ActivityRepositoryProtocol):
    """Append-only in-memory activity log."""

    def __init__(self, bus: realtime.RealtimeBus | None = None) -> None:
        self._records: list[db_models.Activity] = []
        self._bus = bus
        self._lock = threading.Lock()

    def add(self, activity: db_models.Activity) -> db_models.Activity:
        with self._lock:
            self._records.append(activity)
        if self._bus is not None:
            self._bus.publish(realtime.ACTIVITY_TABLE, activity)
        return activity

    def recent(self, limit: int) -> list[db_models.Activity]:
        return _newest_first(list(self._records), limit)


class _PostgresRepository:
    """Connection and schema handling shared by the PostgreSQL repositories."""

    CREATE_TABLE_SQL = ""

    def __init__(
        self,
        settings: config.Settings,
        bus: realtime.RealtimeBus | None = None,
    ) -> None:
        """Initialize repository with database settings.

        Args:
            settings: Application settings containing database connection URL.
            bus: Realtime bus notified after each committed insert.
        """
        self.settings = settings
        self._bus = bus
        self._ensure_schema()

    def _connection(self) -> psycopg2.extensions.connection:
        """Create a new database connection returning rows as dicts."""
        try:
            return psycopg2.connect(
                self.settings.database_url,
                cursor_factory=psycopg2.extras.RealDictCursor,
            )
        except psycopg2.Error as exc:
            raise errors.PersistenceError(f"Database unavailable: {exc}") from exc

    def _ensure_schema(self) -> None:
        self._execute(self.CREATE_TABLE_SQL)

    def _execute(
        self,
        sql: str,
        params: dict[str, Any] | tuple[Any, ...] | None = None,
    ) -> list[dict[str, Any]]:
        """Run one statement in its own transaction and return fetched rows."""
        conn = self._connection()
        try:
            with conn, conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall() if cur.description else []
        except psycopg2.Error as exc:
            raise errors.PersistenceError(str(exc).strip()) from exc
        finally:
            conn.close()
        return [dict(cast(dict[str, Any], row)) for row in rows]


class PostgresDrawingRepository(_PostgresRepository, DrawingRepositoryProtocol):
    """PostgreSQL-backed drawing repository.

    Bounds are stored as JSONB alongside denormalized latitude/longitude
    columns used for region queries.
    """

    CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS drawings (
      id TEXT PRIMARY KEY,
      user_id TEXT NOT NULL,
      image_url TEXT NOT NULL,
      latitude DOUBLE PRECISION NOT NULL,
      longitude DOUBLE PRECISION NOT NULL,
      bounds JSONB NOT NULL,
      enhanced BOOLEAN NOT NULL DEFAULT false,
      original_image_url TEXT,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    CREATE INDEX IF NOT EXISTS drawings_created_at_idx
      ON drawings (created_at DESC);
    """

    def add(self, drawing: db_models.Drawing) -> db_models.Drawing:
        rows = self._execute(
            """
            INSERT INTO drawings (
                id, user_id, image_url, latitude, longitude, bounds,
                enhanced, original_image_url, created_at
            ) VALUES (%(id)s, %(user_id)s, %(image_url)s, %(latitude)s,
                %(longitude)s, %(bounds)s, %(enhanced)s,
                %(original_image_url)s, %(created_at)s)
            RETURNING *;
            """,
            self._to_row(drawing),
        )
        stored = self._from_row(rows[0])
        if self._bus is not None:
            self._bus.publish(realtime.DRAWINGS_TABLE, stored)
        return stored

    def get(self, drawing_id: str) -> db_models.Drawing | None:
        rows = self._execute("SELECT * FROM drawings WHERE id = %s", (drawing_id,))
        if not rows:
            return None
        else:
            return self._from_row(rows[0])

    def recent(self, limit: int) -> list[db_models.Drawing]:
        rows = self._execute(
            "SELECT * FROM drawings ORDER BY created_at DESC LIMIT %s",
            (limit,),
        )
        return [self._from_row(row) for row in rows]

    def mark_enhanced(
        self,
        drawing_id: str,
        image_url: str,
    ) -> db_models.Drawing:
        rows = self._execute(
            """
            UPDATE drawings
               SET original_image_url = image_url,
                   image_url = %(image_url)s,
                   enhanced = true
             WHERE id = %(id)s AND enhanced = false
            RETURNING *;
            """,
            {"id": drawing_id, "image_url": image_url},
        )
        if rows:
            return self._from_row(rows[0])
        if self.get(drawing_id) is None:
            raise errors.NotFound(f"Drawing {drawing_id} not found")
        raise errors.Conflict(f"Drawing {drawing_id} already enhanced")

    @staticmethod
    def _to_row(drawing: db_models.Drawing) -> dict[str, object]:
        """Convert a Drawing to a parameter dictionary for insertion."""
        return {
            "id": drawing.id,
            "user_id": drawing.user_id,
            "image_url": drawing.image_url,
            "latitude": drawing.latitude,
            "longitude": drawing.longitude,
            "bounds": psycopg2.extras.Json(drawing.bounds.to_dict()),
            "enhanced": drawing.enhanced,
            "original_image_url": drawing.original_image_url,
            "created_at": drawing.created_at,
        }

    @staticmethod
    def _from_row(row: dict[str, Any]) -> db_models.Drawing:
        """Convert a database row dictionary to a Drawing."""
        created_at = row.get("created_at")
        if not isinstance(created_at, datetime.datetime):
            created_at = datetime.datetime.now(datetime.UTC)
        original_image_url = row.get("original_image_url")
        return db_models.Drawing(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            image_url=str(row["image_url"]),
            bounds=db_models.Bounds.from_dict(row["bounds"]),
            enhanced=bool(row.get("enhanced", False)),
            original_image_url=(
                str(original_image_url) if original_image_url is not None else None
            ),
            created_at=created_at,
        )


class PostgresActivityRepository(_PostgresRepository, ActivityRepositoryProtocol):
    """PostgreSQL-backed activity log."""

    CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS activity (
      id TEXT PRIMARY KEY,
      drawing_id TEXT NOT NULL,
      user_id TEXT NOT NULL,
      action TEXT NOT NULL,
      metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    CREATE INDEX IF NOT EXISTS activity_created_at_idx
      ON activity (created_at DESC);
    """

    def add(self, activity: db_models.Activity) -> db_models.Activity:
        rows = self._execute(
            """
            INSERT INTO activity (
                id, drawing_id, user_id, action, metadata, created_at
            ) VALUES (%(id)s, %(drawing_id)s, %(user_id)s, %(action)s,
                %(metadata)s, %(created_at)s)
            RETURNING *;
            """,
            self._to_row(activity),
        )
        stored = self._from_row(rows[0])
        if self._bus is not None:
            self._bus.publish(realtime.ACTIVITY_TABLE, stored)
        return stored

    def recent(self, limit: int) -> list[db_models.Activity]:
        rows = self._execute(
            "SELECT * FROM activity ORDER BY created_at DESC LIMIT %s",
            (limit,),
        )
        return [self._from_row(row) for row in rows]

    @staticmethod
    def _to_row(activity: db_models.Activity) -> dict[str, object]:
        return {
            "id": activity.id,
            "drawing_id": activity.drawing_id,
            "user_id": activity.user_id,
            "action": activity.action.value,
            "metadata": psycopg2.extras.Json(activity.to_dict()["metadata"]),
            "created_at": activity.created_at,
        }

    @staticmethod
    def _from_row(row: dict[str, Any]) -> db_models.Activity:
        created_at = row.get("created_at")
        if not isinstance(created_at, datetime.datetime):
            created_at = datetime.datetime.now(datetime.UTC)
        metadata = dict(row.get("metadata") or {})
        location = metadata.get("location")
        if isinstance(location, dict):
            metadata["location"] = db_models.Bounds.from_dict(location)
        return db_models.Activity(
            id=str(row["id"]),
            drawing_id=str(row["drawing_id"]),
            user_id=str(row["user_id"]),
            action=db_models.ActivityAction(str(row["action"])),
            metadata=metadata,
            created_at=created_at,
        )


def get_drawing_repository(
    settings: config.Settings,
    bus: realtime.RealtimeBus | None = None,
) -> DrawingRepositoryProtocol:
    """Factory function to create a drawing repository.

    Returns:
        PostgresDrawingRepository instance for production use.
    """
    return PostgresDrawingRepository(settings, bus)


def get_activity_repository(
    settings: config.Settings,
    bus: realtime.RealtimeBus | None = None,
) -> ActivityRepositoryProtocol:
    """Factory function to create an activity repository.

    Returns:
        PostgresActivityRepository instance for production use.
    """
    return PostgresActivityRepository(settings, bus)
