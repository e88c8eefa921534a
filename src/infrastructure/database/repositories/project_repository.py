from __future__ import annotations

import copy
import json
import os
from datetime import datetime
from typing import Any

from supabase import Client

from src.domain.entities.edit_history import OperationEntity
from src.domain.entities.image import ImageRef
from src.domain.entities.project import ProjectEntity
from src.infrastructure.database.postgres_client import get_postgres_client

# module-level in-memory store for disabled mode
_MEM_PROJECTS: dict[str, ProjectEntity] = {}

TABLE = "ai_projects"


class ProjectRepository:
    """Persists whole project aggregates, one document per project.

    Callers load, mutate and ``save`` under the per-project lock; the
    repository itself does no merging.
    """

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.use_local_db = os.getenv("USE_LOCAL_DB", "0") == "1"
        self.pg_client = get_postgres_client() if self.use_local_db else None

    @property
    def in_memory(self) -> bool:
        return not (self.use_local_db and self.pg_client) and (self.disabled or self.client is None)

    # --------- serialization ---------
    @staticmethod
    def entity_to_document(entity: ProjectEntity) -> dict[str, Any]:
        return {
            "id": entity.id,
            "title": entity.title,
            "description": entity.description,
            "original_image": entity.original_image.to_dict() if entity.original_image else None,
            "operations": [op.to_dict() for op in entity.operations],
            "max_versions": entity.max_versions,
            "status": entity.status,
            "created_at": entity.created_at.isoformat(),
            "updated_at": entity.updated_at.isoformat(),
        }

    @staticmethod
    def _row_to_entity(row: dict[str, Any]) -> ProjectEntity:
        data = row.get("data", row)
        # JSONB may come back as text depending on the driver
        if isinstance(data, str):
            data = json.loads(data)
        created_at = data["created_at"]
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        updated_at = data.get("updated_at") or created_at
        if isinstance(updated_at, str):
            updated_at = datetime.fromisoformat(updated_at)
        return ProjectEntity(
            id=data["id"],
            title=data.get("title") or "AI Edit Project",
            description=data.get("description") or "",
            original_image=ImageRef.from_dict(data.get("original_image")),
            operations=[OperationEntity.from_dict(op) for op in data.get("operations") or []],
            max_versions=int(data.get("max_versions") or 50),
            status=data.get("status", "active"),
            created_at=created_at,
            updated_at=updated_at,
        )

    # --------- commands ---------
    def create(self, entity: ProjectEntity) -> ProjectEntity:
        doc = self.entity_to_document(entity)

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = f"""
                INSERT INTO {TABLE} (id, status, data, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s)
            """
            try:
                self.pg_client.execute_update(
                    query, (entity.id, entity.status, json.dumps(doc), entity.created_at, entity.updated_at)
                )
            except Exception as exc:
                raise RuntimeError(f"PostgreSQL insert project failed: {exc}") from exc
            return entity

        # In-memory mode
        if self.in_memory:
            _MEM_PROJECTS[entity.id] = copy.deepcopy(entity)
            return entity

        # Supabase mode
        try:  # pragma: no cover - network
            self.client.table(TABLE).insert(  # type: ignore[union-attr]
                {"id": entity.id, "status": entity.status, "data": doc}
            ).execute()
            return entity
        except Exception as exc:
            raise RuntimeError(f"DB insert project failed: {exc}") from exc

    def save(self, entity: ProjectEntity) -> ProjectEntity:
        doc = self.entity_to_document(entity)

        if self.use_local_db and self.pg_client:
            query = f"UPDATE {TABLE} SET status = %s, data = %s, updated_at = %s WHERE id = %s"
            try:
                self.pg_client.execute_update(
                    query, (entity.status, json.dumps(doc), entity.updated_at, entity.id)
                )
            except Exception as exc:
                raise RuntimeError(f"PostgreSQL update project failed: {exc}") from exc
            return entity

        if self.in_memory:
            _MEM_PROJECTS[entity.id] = copy.deepcopy(entity)
            return entity

        try:  # pragma: no cover - network
            self.client.table(TABLE).update(  # type: ignore[union-attr]
                {"status": entity.status, "data": doc}
            ).eq("id", entity.id).execute()
            return entity
        except Exception as exc:
            raise RuntimeError(f"DB update project failed: {exc}") from exc

    def delete(self, project_id: str) -> bool:
        if self.use_local_db and self.pg_client:
            affected = self.pg_client.execute_update(f"DELETE FROM {TABLE} WHERE id = %s", (project_id,))
            return affected > 0

        if self.in_memory:
            return _MEM_PROJECTS.pop(project_id, None) is not None

        try:  # pragma: no cover - network
            self.client.table(TABLE).delete().eq("id", project_id).execute()  # type: ignore[union-attr]
            return True
        except Exception as exc:
            raise RuntimeError(f"DB delete project failed: {exc}") from exc

    # --------- queries ---------
    def get(self, project_id: str) -> ProjectEntity | None:
        if self.use_local_db and self.pg_client:
            row = self.pg_client.execute_one(f"SELECT data FROM {TABLE} WHERE id = %s", (project_id,))
            return self._row_to_entity(row) if row else None

        if self.in_memory:
            entity = _MEM_PROJECTS.get(project_id)
            return copy.deepcopy(entity) if entity else None

        try:  # pragma: no cover - network
            res = self.client.table(TABLE).select("data").eq("id", project_id).limit(1).execute()  # type: ignore[union-attr]
            rows = res.data or []
            return self._row_to_entity(rows[0]) if rows else None
        except Exception as exc:
            raise RuntimeError(f"DB get project failed: {exc}") from exc

    def list_by_status(self, status: str | None = "active") -> list[ProjectEntity]:
        """Most recently updated first; ``status=None`` lists everything."""
        if self.use_local_db and self.pg_client:
            if status is None:
                rows = self.pg_client.execute_many(f"SELECT data FROM {TABLE} ORDER BY updated_at DESC")
            else:
                rows = self.pg_client.execute_many(
                    f"SELECT data FROM {TABLE} WHERE status = %s ORDER BY updated_at DESC", (status,)
                )
            return [self._row_to_entity(row) for row in rows]

        if self.in_memory:
            items = [
                copy.deepcopy(p) for p in _MEM_PROJECTS.values() if status is None or p.status == status
            ]
            return sorted(items, key=lambda p: p.updated_at, reverse=True)

        try:  # pragma: no cover - network
            query = self.client.table(TABLE).select("data")  # type: ignore[union-attr]
            if status is not None:
                query = query.eq("status", status)
            res = query.order("updated_at", desc=True).execute()
            return [self._row_to_entity(row) for row in res.data or []]
        except Exception as exc:
            raise RuntimeError(f"DB list projects failed: {exc}") from exc
