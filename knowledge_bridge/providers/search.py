"""
Keyword, semantic, hybrid and graph search tools.

Ranking happens remotely; this module only shapes the query and degrades
gracefully when the remote vector or graph backends are unavailable.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from knowledge_bridge.core.identity import SessionContext
from knowledge_bridge.sdk.errors import ApiError

from .base import PROJECT_ID_PROPERTY, CapabilityProvider, ToolDescriptor, flag, format_success, project_endpoint, tool, unwrap

logger = logging.getLogger("KnowledgeBridge.providers.search")

SEARCH_MODES = ("keyword", "semantic", "hybrid")
_VECTOR_FAILURE_MARKERS = ("embedding", "chromadb")
_GRAPH_FAILURE_MARKERS = ("graph", "relationship")

TOOLS: Tuple[ToolDescriptor, ...] = (
    tool(
        "search",
        "Search notes using keyword, semantic, or hybrid search modes",
        {
            "query": {"type": "string", "description": "Search query string", "minLength": 1},
            "mode": {
                "type": "string",
                "enum": list(SEARCH_MODES),
                "description": "Search mode (default: keyword)",
                "default": "keyword",
            },
            "projectId": PROJECT_ID_PROPERTY,
            "limit": {
                "type": "number",
                "description": "Maximum number of results (default: 20)",
                "minimum": 1,
                "maximum": 100,
            },
            "context_depth": {
                "type": "string",
                "enum": ["snippet", "paragraph", "full"],
                "description": "Context detail level (default: snippet)",
                "default": "snippet",
            },
            "highlight_matches": {
                "type": "boolean",
                "description": "Highlight search terms in results (default: true)",
                "default": True,
            },
            "include_connections": {
                "type": "boolean",
                "description": "Include note connections and relationships (default: false)",
                "default": False,
            },
            "include_line_numbers": {
                "type": "boolean",
                "description": "Include line numbers in context (default: false)",
                "default": False,
            },
            "max_connections": {
                "type": "number",
                "description": "Maximum connections per result (default: 5)",
                "minimum": 1,
                "maximum": 20,
                "default": 5,
            },
            "semantic_weight": {
                "type": "number",
                "description": "Weight for semantic search in hybrid mode (0.0-1.0, default: 0.7)",
                "minimum": 0,
                "maximum": 1,
            },
            "threshold": {
                "type": "number",
                "description": "Semantic similarity threshold (0.0-1.0, default: 0.3)",
                "minimum": 0,
                "maximum": 1,
            },
            "virtual_folder": {"type": "string", "description": "Filter results by virtual folder"},
            "tags": {"type": "array", "items": {"type": "string"}, "description": "Filter results by tags"},
            "created_by": {"type": "string", "description": "Filter results by creator"},
            "streamlined": {
                "type": "boolean",
                "description": "Return streamlined response optimized for LLM consumption (default: true)",
                "default": True,
            },
        },
        required=["query"],
    ),
    tool(
        "graph_search",
        "Graph-based search focusing on note relationships and connections",
        {
            "query": {"type": "string", "description": "Search query for graph-based search", "minLength": 1},
            "projectId": PROJECT_ID_PROPERTY,
            "mode": {
                "type": "string",
                "enum": ["keyword", "semantic", "hybrid", "graph"],
                "description": "Search mode (default: graph)",
            },
            "includeGraph": {"type": "boolean", "description": "Include graph relationship information (default: true)"},
            "includeContext": {"type": "boolean", "description": "Include context snippets (default: true)"},
            "maxResults": {
                "type": "number",
                "description": "Maximum number of results (default: 30)",
                "minimum": 1,
                "maximum": 100,
            },
            "graphWeight": {
                "type": "number",
                "description": "Weight for graph-based scoring (0.0-1.0, default: 0.5)",
                "minimum": 0,
                "maximum": 1,
            },
        },
        required=["query"],
    ),
)


def build_search_params(args: Dict[str, Any]) -> List[Tuple[str, Any]]:
    """Query string for /notes/search; parameters at their default value are omitted."""
    params: List[Tuple[str, Any]] = [("q", args["query"])]
    mode = args.get("mode") or "keyword"
    if mode != "keyword":
        params.append(("mode", mode))
    for key in ("limit", "semantic_weight", "threshold", "virtual_folder", "created_by"):
        if args.get(key):
            params.append((key, args[key]))
    for tag in args.get("tags") or []:
        params.append(("tags", tag))

    if args.get("context_depth") and args["context_depth"] != "snippet":
        params.append(("context_depth", args["context_depth"]))
    if args.get("highlight_matches") is not None and args["highlight_matches"] is not True:
        params.append(("highlight_matches", flag(args["highlight_matches"])))
    if args.get("include_connections"):
        params.append(("include_connections", "true"))
    if args.get("include_line_numbers"):
        params.append(("include_line_numbers", "true"))
    if args.get("max_connections") and args["max_connections"] != 5:
        params.append(("max_connections", args["max_connections"]))
    if args.get("streamlined") is not None and args["streamlined"] is not True:
        params.append(("streamlined", flag(args["streamlined"])))
    return params


def search_message(args: Dict[str, Any], count: int) -> str:
    mode = args.get("mode") or "keyword"
    query = args["query"]
    if mode == "semantic":
        message = f'Found {count} semantically similar notes for "{query}"'
    elif mode == "hybrid":
        weight = args.get("semantic_weight") or 0.7
        message = (
            f"Found {count} notes using hybrid search "
            f"({round((1 - weight) * 100)}% keyword, {round(weight * 100)}% semantic) for \"{query}\""
        )
    else:
        message = f'Found {count} notes matching "{query}"'

    if args.get("context_depth") and args["context_depth"] != "snippet":
        message += f" with {args['context_depth']} context"
    if args.get("include_connections"):
        message += " and relationships"
    return message


def _failure_reason(exc: BaseException) -> str:
    # The remote detail only; the request path would otherwise match the markers.
    detail = exc.detail if isinstance(exc, ApiError) else str(exc)
    return detail.lower()


def _result_count(data: Any) -> int:
    if isinstance(data, dict) and isinstance(data.get("results"), list):
        return len(data["results"])
    if isinstance(data, list):
        return len(data)
    return 0


class SearchProvider(CapabilityProvider):
    name = "search"

    def list_tools(self) -> List[ToolDescriptor]:
        return list(TOOLS)

    async def tool_search(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        mode = args.get("mode") or "keyword"
        try:
            result = await self.request(
                project_endpoint(project_id, "/notes/search"), params=build_search_params(args)
            )
        except Exception as exc:
            reason = _failure_reason(exc)
            if any(marker in reason for marker in _VECTOR_FAILURE_MARKERS):
                if mode == "semantic":
                    return format_success(
                        {"results": [], "total": 0},
                        "Semantic search unavailable - vector store not accessible. "
                        "Consider using keyword search instead.",
                    )
                if mode == "hybrid":
                    logger.warning("Hybrid search falling back to keyword search: %s", exc)
                    fallback = dict(args, mode="keyword", semantic_weight=None, threshold=None)
                    return await self.tool_search(project_id, fallback, context)
            raise

        data = unwrap(result)
        return format_success(data, search_message(args, _result_count(data)))

    async def tool_graph_search(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        params: List[Tuple[str, Any]] = [
            ("q", args["query"]),
            ("mode", args.get("mode") or "graph"),
            ("includeGraph", flag(args.get("includeGraph") is not False)),
            ("includeContext", flag(args.get("includeContext") is not False)),
        ]
        for key in ("maxResults", "graphWeight"):
            if args.get(key):
                params.append((key, args[key]))

        try:
            result = await self.request(project_endpoint(project_id, "/search/graph"), params=params)
        except Exception as exc:
            reason = _failure_reason(exc)
            if any(marker in reason for marker in _GRAPH_FAILURE_MARKERS):
                logger.warning("Graph search falling back to keyword search: %s", exc)
                fallback = {
                    key: value
                    for key, value in args.items()
                    if key not in ("includeGraph", "graphWeight", "includeContext", "maxResults")
                }
                fallback["mode"] = "keyword"
                return await self.tool_search(project_id, fallback, context)
            raise

        data = unwrap(result)
        graph_info = " with relationship analysis" if isinstance(result, dict) and result.get("relationship_map") else ""
        return format_success(
            data,
            f'Found {_result_count(data)} graph-based results for "{args["query"]}"{graph_info}',
        )
