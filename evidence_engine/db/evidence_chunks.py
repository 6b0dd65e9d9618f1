"""Evidence chunk persistence in Supabase."""

from typing import Any

from supabase import Client

from evidence_engine.core.config import get_settings
from evidence_engine.core.logging import get_logger
from evidence_engine.core.schemas_documents import ChunkFilters
from evidence_engine.db.chunk_store import CATEGORY_FLAGS, ChunkRecord
from evidence_engine.db.supabase_client import get_supabase

logger = get_logger(__name__)


def _escape_like(value: str) -> str:
    """Make a value match literally in an ILIKE pattern."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SupabaseChunkStore:
    """ChunkStore over a Supabase table with a JSONB metadata column."""

    def __init__(self, client: Client | None = None, table: str | None = None):
        self._client = client
        self.table = table or get_settings().CHUNK_TABLE

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    def upsert(self, record: ChunkRecord) -> None:
        """
        Insert or replace a chunk record by id.

        Raises:
            Exception: If the Supabase call fails
        """
        row = record.model_dump(mode="json")
        try:
            self.client.table(self.table).upsert(row, on_conflict="id").execute()
            logger.debug(f"Upserted chunk {record.id}")
        except Exception as e:
            logger.error(f"Failed to upsert chunk {record.id}: {e}", extra={"source_file": record.metadata.source_file})
            raise

    def query(self, filters: ChunkFilters | None = None) -> list[ChunkRecord]:
        """
        Fetch chunk records matching filters.

        Returns:
            Records ordered by source file and chunk index
        """
        try:
            query = self.client.table(self.table).select("id, content, embedding, metadata")

            containment: dict[str, Any] = {"type": "evidence"}
            if filters is not None:
                if filters.source_file:
                    containment["source_file"] = filters.source_file
                if filters.category:
                    containment[CATEGORY_FLAGS[filters.category]] = True
                if filters.topic:
                    query = query.ilike("metadata->>topic", _escape_like(filters.topic))
                if filters.structured_only:
                    query = query.gt("metadata->>evidence_count", 0)
            query = query.contains("metadata", containment)

            response = query.order("id", desc=False).execute()
            records = [ChunkRecord.model_validate(row) for row in response.data or []]
            logger.info(f"Fetched {len(records)} chunk records from {self.table}")
            return sorted(records, key=lambda r: (r.metadata.source_file, r.metadata.chunk_index))

        except Exception as e:
            logger.error(f"Failed to query chunks from {self.table}: {e}")
            raise

    def delete_by_source(self, source_file: str) -> int:
        """Delete every chunk from a source file; returns how many were removed."""
        try:
            response = (
                self.client.table(self.table)
                .delete()
                .contains("metadata", {"source_file": source_file})
                .execute()
            )
            deleted = len(response.data or [])
            logger.info(f"Deleted {deleted} chunks", extra={"source_file": source_file})
            return deleted

        except Exception as e:
            logger.error(f"Failed to delete chunks: {e}", extra={"source_file": source_file})
            raise
