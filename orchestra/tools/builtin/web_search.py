"""
Web search tool for searching the internet.

This module provides a tool for searching the web using DuckDuckGo
and returning formatted search results.
"""

import asyncio
import logging
from typing import Any

from ddgs import DDGS
from pydantic import BaseModel, Field

from orchestra.tools.base import Tool, ToolInvocation
from orchestra.tools.models import ToolResult

logger = logging.getLogger(__name__)


class WebSearchParams(BaseModel):
    """
    Parameters for the web_search tool.

    Parameters
    ----------
    query : str
        Search query.
    max_results : int, default=10
        Maximum results to return (1-20).
    """

    query: str = Field(..., min_length=1, description="Search query")
    max_results: int = Field(
        10,
        ge=1,
        le=20,
        description="Maximum results to return (default: 10)",
    )


def _search(query: str) -> list[dict[str, Any]]:
    return list(
        DDGS().text(
            query,
            region="us-en",
            safesearch="off",
            page=1,
            backend="auto",
        )
    )


class WebSearchTool(Tool):
    """Tool for searching the web with titles, URLs and snippets."""

    name: str = "web_search"
    description: str = (
        "Search the web for current information. "
        "Returns search results with titles, URLs and snippets"
    )
    schema: type[WebSearchParams] = WebSearchParams

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        params = WebSearchParams(**invocation.params)

        try:
            # ddgs is synchronous
            results: list[dict[str, Any]] = await asyncio.to_thread(_search, params.query)
        except Exception as e:
            logger.exception(f"Web search failed for query '{params.query}': {e}")
            return ToolResult.error_result(invocation.call_id, f"Search failed: {e}")

        if not results:
            return ToolResult.success_result(
                invocation.call_id,
                f"No results found for: {params.query}",
            )

        output_lines: list[str] = [f"Search results for: {params.query}"]
        for i, result in enumerate(results[: params.max_results], start=1):
            output_lines.append(f"{i}. Title: {result.get('title', '')}")
            output_lines.append(f"   URL: {result.get('href', '')}")
            if result.get("body"):
                output_lines.append(f"   Snippet: {result['body']}")
            output_lines.append("")

        return ToolResult.success_result(invocation.call_id, "\n".join(output_lines))
