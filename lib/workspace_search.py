"""Semantic search over a user's indexed workspace in Supabase."""
from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from lib.supabase_client import fetch_rows

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "No relevant context found in your workspace."


class WorkspaceSearch:
    """
    Vector search across transcripts, companies and coaching notes.

    The embedding index is maintained elsewhere; this class only embeds the
    query and calls the matching RPC.
    """

    def __init__(
        self,
        supabase_client: Any,
        embed: Callable[[str], Awaitable[List[float]]],
        query_name: str = "search_workspace_embeddings",  # matching function
        min_similarity: float = 0.25,
    ):
        self.supabase_client = supabase_client
        self.embed = embed
        self.query_name = query_name
        self.min_similarity = min_similarity

    async def query(self, user_id: str, query_text: str, k: int = 5) -> List[Dict[str, Any]]:
        """
        Query the workspace index.

        Args:
            user_id: Owner of the workspace
            query_text: The query string
            k: Number of results to return
        Returns:
            list of matched rows (id, source_type, source_id, content, similarity, metadata)
        """
        query_embedding = await self.embed(query_text)
        return await fetch_rows(
            self.supabase_client.rpc(
                self.query_name,
                {
                    "query_embedding": json.dumps(query_embedding),
                    "match_user_id": user_id,
                    "match_count": k,
                    "min_similarity": self.min_similarity,
                    "source_types": None,
                },
            )
        )

    async def search(self, user_id: str, query_text: str, k: int = 5) -> str:
        """Top-k workspace fragments for a query, rendered as prompt text."""
        results = await self.query(user_id, query_text, k)
        return format_search_results(results)


def _similarity_header(row: Dict[str, Any]) -> str:
    try:
        similarity = float(row.get("similarity") or 0.0)
    except (TypeError, ValueError):
        similarity = 0.0
    return f"[Relevance: {similarity * 100:.0f}%]"


def format_search_results(results: List[Dict[str, Any]]) -> str:
    """Group matched fragments by source type."""
    if not results:
        return NO_RESULTS_MESSAGE

    transcript_chunks: List[str] = []
    company_chunks: List[str] = []
    other_chunks: List[str] = []

    for row in results:
        metadata: Optional[Dict[str, Any]] = row.get("metadata") if isinstance(row.get("metadata"), dict) else {}
        content = str(row.get("content") or "")
        header = _similarity_header(row)
        source_type = row.get("source_type")
        source_id = row.get("source_id")
        if source_type == "transcript":
            title = metadata.get("title") or f"Transcript #{source_id}"
            transcript_chunks.append(f"### {title}\n{header}\n{content[:2000]}")
        elif source_type == "company":
            name = metadata.get("company_name") or f"Company #{source_id}"
            company_chunks.append(f"### {name}\n{header}\n{content[:2000]}")
        else:
            other_chunks.append(f"{header}\n{content[:1000]}")

    parts: List[str] = []
    if transcript_chunks:
        parts.append("## Relevant Call Transcripts\n" + "\n\n---\n\n".join(transcript_chunks))
    if company_chunks:
        parts.append("## Relevant Company Information\n" + "\n\n---\n\n".join(company_chunks))
    if other_chunks:
        parts.append("## Other Relevant Context\n" + "\n\n".join(other_chunks))
    return "\n\n".join(parts)
