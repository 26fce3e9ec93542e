"""
Wikilink and cross-reference tools.

Link analysis (integrity scores, suggestions) is computed by the remote API;
these tools only issue the requests and summarize the replies.
"""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from knowledge_bridge.core.identity import SessionContext

from .base import (
    NOTE_ID_PROPERTY,
    PROJECT_ID_PROPERTY,
    CapabilityProvider,
    ToolDescriptor,
    flag,
    format_success,
    project_endpoint,
    quote_segment,
    tool,
    unwrap,
)

_SOURCE_NOTE = {"type": ["number", "string"], "description": "Source note stable ID or content hash"}
_TARGET_NOTE = {"type": ["number", "string"], "description": "Target note stable ID or content hash"}

TOOLS: Tuple[ToolDescriptor, ...] = (
    tool(
        "add_wikilink",
        "Add a wikilink between two notes, creating bidirectional or unidirectional connections",
        {
            "noteId": _SOURCE_NOTE,
            "targetNoteId": _TARGET_NOTE,
            "linkText": {
                "type": "string",
                "description": "Optional custom link text (defaults to target note title)",
            },
            "bidirectional": {
                "type": "boolean",
                "description": "Create bidirectional link (default: true)",
                "default": True,
            },
            "projectId": PROJECT_ID_PROPERTY,
        },
        required=["noteId", "targetNoteId"],
    ),
    tool(
        "remove_wikilink",
        "Remove a wikilink connection between two notes",
        {"noteId": _SOURCE_NOTE, "targetNoteId": _TARGET_NOTE, "projectId": PROJECT_ID_PROPERTY},
        required=["noteId", "targetNoteId"],
    ),
    tool(
        "get_note_connections",
        "Get all connections (forward links, backlinks, and related notes) for a specific note",
        {
            "noteId": NOTE_ID_PROPERTY,
            "includeContent": {
                "type": "boolean",
                "description": "Include content snippets for connected notes (default: false)",
                "default": False,
            },
            "maxConnections": {
                "type": "number",
                "description": "Maximum connections per type (default: 10)",
                "minimum": 1,
                "maximum": 50,
                "default": 10,
            },
            "projectId": PROJECT_ID_PROPERTY,
        },
        required=["noteId"],
    ),
    tool(
        "suggest_connections",
        "Get connection suggestions for a note based on content similarity and relationships",
        {
            "noteId": NOTE_ID_PROPERTY,
            "maxSuggestions": {
                "type": "number",
                "description": "Maximum suggestions to return (default: 10)",
                "minimum": 1,
                "maximum": 50,
                "default": 10,
            },
            "includeReasons": {
                "type": "boolean",
                "description": "Include explanation for why each connection is suggested (default: true)",
                "default": True,
            },
            "projectId": PROJECT_ID_PROPERTY,
        },
        required=["noteId"],
    ),
    tool(
        "validate_note_links",
        "Validate all wikilinks in a specific note and get detailed link health information",
        {"noteId": NOTE_ID_PROPERTY, "projectId": PROJECT_ID_PROPERTY},
        required=["noteId"],
    ),
    tool(
        "get_knowledge_base_health",
        "Get comprehensive link health overview for the entire knowledge base",
        {"projectId": PROJECT_ID_PROPERTY},
    ),
)


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _count(value: Any) -> int:
    return len(value) if isinstance(value, list) else 0


class CrossReferenceProvider(CapabilityProvider):
    name = "cross_reference"

    def list_tools(self) -> List[ToolDescriptor]:
        return list(TOOLS)

    def _note_path(self, project_id: str, note_id: Any, suffix: str = "") -> str:
        return project_endpoint(project_id, f"/notes/{quote_segment(note_id)}{suffix}")

    async def tool_add_wikilink(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        bidirectional = args.get("bidirectional") is not False
        body: Dict[str, Any] = {"target_note_id": args["targetNoteId"], "bidirectional": bidirectional}
        if args.get("linkText"):
            body["link_text"] = args["linkText"]

        result = await self.request(
            self._note_path(project_id, args["noteId"], "/links"), method="POST", json_body=body
        )
        kind = "bidirectional" if bidirectional else "unidirectional"
        return format_success(
            unwrap(result),
            f"Created {kind} wikilink between notes {args['noteId']} and {args['targetNoteId']}",
        )

    async def tool_remove_wikilink(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        path = self._note_path(project_id, args["noteId"], f"/links/{quote_segment(args['targetNoteId'])}")
        result = await self.request(path, method="DELETE")
        return format_success(
            unwrap(result),
            f"Removed wikilink between notes {args['noteId']} and {args['targetNoteId']}",
        )

    async def tool_get_note_connections(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        params = []
        if args.get("includeContent"):
            params.append(("includeContent", flag(args["includeContent"])))
        if args.get("maxConnections"):
            params.append(("maxConnections", args["maxConnections"]))

        data = unwrap(await self.request(self._note_path(project_id, args["noteId"], "/connections"), params=params))
        links = _as_dict(data)
        total = _count(links.get("forwardLinks")) + _count(links.get("backlinks")) + _count(links.get("relatedNotes"))
        return format_success(data, f"Found {total} connections for note {args['noteId']}")

    async def tool_suggest_connections(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        body = {
            "max_suggestions": args.get("maxSuggestions") or 10,
            "include_reasons": args.get("includeReasons") is not False,
        }
        data = unwrap(
            await self.request(
                self._note_path(project_id, args["noteId"], "/connections/suggest"), method="POST", json_body=body
            )
        )
        count = _count(_as_dict(data).get("suggestions"))
        return format_success(data, f"Found {count} connection suggestions for note {args['noteId']}")

    async def tool_validate_note_links(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        data = unwrap(await self.request(self._note_path(project_id, args["noteId"], "/links/validate")))
        report = _as_dict(data)
        return format_success(
            data,
            "Note validation: {valid} valid, {broken} broken links ({score}% integrity)".format(
                valid=report.get("validLinks", 0),
                broken=report.get("brokenLinks", 0),
                score=report.get("linkIntegrityScore", 0),
            ),
        )

    async def tool_get_knowledge_base_health(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        data = unwrap(await self.request(project_endpoint(project_id, "/health/links")))
        report = _as_dict(data)
        overview = _as_dict(report.get("overview"))
        return format_success(
            data,
            "Knowledge base health: {score}% integrity ({status}) - {valid}/{total} links valid".format(
                score=overview.get("linkIntegrityScore", 0),
                status=report.get("healthStatus", "unknown"),
                valid=overview.get("validLinks", 0),
                total=overview.get("totalWikilinks", 0),
            ),
        )
