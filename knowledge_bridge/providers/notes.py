"""
Note CRUD and content inspection tools.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from knowledge_bridge.core.identity import SessionContext
from knowledge_bridge.sdk.errors import ValidationError

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

_OLD_STR = {"type": "string", "description": "String to replace in content"}
_NEW_STR = {"type": "string", "description": "Replacement string for content"}

TOOLS: Tuple[ToolDescriptor, ...] = (
    tool(
        "list_notes",
        "List notes in the current project with optional filtering and pagination",
        {
            "projectId": PROJECT_ID_PROPERTY,
            "limit": {
                "type": "number",
                "description": "Maximum number of notes to return (default: 50)",
                "minimum": 1,
                "maximum": 1000,
            },
            "offset": {
                "type": "number",
                "description": "Number of notes to skip for pagination (default: 0)",
                "minimum": 0,
            },
            "virtual_folder": {"type": "string", "description": "Filter by virtual folder path"},
            "tags": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Filter by tags (all must match)",
            },
            "created_by": {"type": "string", "description": "Filter by creator"},
            "streamlined": {
                "type": "boolean",
                "description": "Return streamlined response optimized for LLM consumption (default: true)",
                "default": True,
            },
        },
    ),
    tool(
        "get_note",
        "Retrieve a specific note by ID or content hash",
        {"id": NOTE_ID_PROPERTY, "projectId": PROJECT_ID_PROPERTY},
        required=["id"],
    ),
    tool(
        "create_note",
        "Create a new note with automatic content hashing and optional embedding generation",
        {
            "title": {"type": "string", "description": "Note title", "minLength": 1, "maxLength": 500},
            "content": {"type": "string", "description": "Note content (supports markdown)"},
            "tags": {"type": "array", "items": {"type": "string"}, "description": "Tags for the note"},
            "virtual_folder": {"type": "string", "description": "Virtual folder path for organization"},
            "projectId": PROJECT_ID_PROPERTY,
            "created_by": {"type": "string", "description": 'Creator identifier (defaults to "mcp")'},
            "generate_embedding": {
                "type": "boolean",
                "description": "Whether to generate embedding for semantic search (default: true)",
            },
        },
        required=["title", "content"],
    ),
    tool(
        "update_note",
        "Update a note using old_str/new_str pattern replacement, or update its title, tags or folder",
        {
            "id": NOTE_ID_PROPERTY,
            "old_str": {"type": "string", "description": "String to replace in content (required for content updates)"},
            "new_str": _NEW_STR,
            "title": {"type": "string", "description": "New title (for metadata updates)", "maxLength": 500},
            "tags": {"type": "array", "items": {"type": "string"}, "description": "New tags (for metadata updates)"},
            "virtual_folder": {"type": "string", "description": "New virtual folder path (for metadata updates)"},
            "projectId": PROJECT_ID_PROPERTY,
            "changed_by": {"type": "string", "description": 'Change author identifier (defaults to "mcp")'},
            "update_embedding": {"type": "boolean", "description": "Whether to update embedding (default: true)"},
            "fuzzy_match": {
                "type": "boolean",
                "description": "Enable fuzzy pattern matching if exact match fails (default: false)",
            },
            "fuzzy_threshold": {
                "type": "number",
                "description": "Similarity threshold for fuzzy matching (0.0 to 1.0, default: 0.7)",
                "minimum": 0.0,
                "maximum": 1.0,
                "default": 0.7,
            },
            "preview": {
                "type": "boolean",
                "description": "Preview changes without executing the update (default: false)",
            },
        },
        required=["id"],
    ),
    tool(
        "delete_note",
        "Delete a note and clean up associated embeddings",
        {
            "id": NOTE_ID_PROPERTY,
            "projectId": PROJECT_ID_PROPERTY,
            "deleted_by": {"type": "string", "description": 'Deletion author identifier (defaults to "mcp")'},
        },
        required=["id"],
    ),
    tool(
        "generate_contexts",
        "Generate missing AI contexts (summaries, keywords, themes) for notes that lack them",
        {
            "projectId": PROJECT_ID_PROPERTY,
            "batch_size": {
                "type": "number",
                "description": "Number of notes to process in one batch (default: 10)",
                "minimum": 1,
                "maximum": 50,
            },
            "force_regenerate": {
                "type": "boolean",
                "description": "Force regeneration of all contexts, not just missing ones (default: false)",
            },
        },
    ),
    tool(
        "get_context_stats",
        "Get statistics about AI context generation for the project",
        {"projectId": PROJECT_ID_PROPERTY},
    ),
    tool(
        "inspect_content",
        "Inspect note content with detailed formatting information, line numbers, and structure analysis",
        {"id": NOTE_ID_PROPERTY, "projectId": PROJECT_ID_PROPERTY},
        required=["id"],
    ),
    tool(
        "preview_update",
        "Preview what an update_note operation would change without executing it",
        {"id": NOTE_ID_PROPERTY, "old_str": _OLD_STR, "new_str": _NEW_STR, "projectId": PROJECT_ID_PROPERTY},
        required=["id", "old_str", "new_str"],
    ),
    tool(
        "validate_update",
        "Validate if an update_note operation would succeed without executing it",
        {"id": NOTE_ID_PROPERTY, "old_str": _OLD_STR, "new_str": _NEW_STR, "projectId": PROJECT_ID_PROPERTY},
        required=["id", "old_str", "new_str"],
    ),
    tool(
        "suggest_patterns",
        "Find similar text patterns in a note when exact pattern matching fails",
        {
            "id": NOTE_ID_PROPERTY,
            "pattern": {"type": "string", "description": "Text pattern to find similar matches for"},
            "threshold": {
                "type": "number",
                "description": "Similarity threshold (0.0 to 1.0, default: 0.6)",
                "minimum": 0.0,
                "maximum": 1.0,
                "default": 0.6,
            },
            "projectId": PROJECT_ID_PROPERTY,
        },
        required=["id", "pattern"],
    ),
)


def _note_label(note: Any) -> str:
    if isinstance(note, dict):
        title = note.get("title")
        note_id = note.get("id", note.get("stable_id"))
        if title and note_id is not None:
            return f"{title} (ID: {note_id})"
        if title:
            return str(title)
    return "note"


def streamline_notes(notes: List[Any], offset: Optional[int], limit: Optional[int]) -> Dict[str, Any]:
    return {
        "notes": notes,
        "count": len(notes),
        "offset": offset or 0,
        "limit": limit,
    }


class NotesProvider(CapabilityProvider):
    name = "notes"

    def list_tools(self) -> List[ToolDescriptor]:
        return list(TOOLS)

    def _note_path(self, project_id: str, note_id: Any, suffix: str = "") -> str:
        return project_endpoint(project_id, f"/notes/{quote_segment(note_id)}{suffix}")

    async def tool_list_notes(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        params: List[Tuple[str, Any]] = []
        for key in ("limit", "offset", "virtual_folder", "created_by"):
            if args.get(key):
                params.append((key, args[key]))
        for tag in args.get("tags") or []:
            params.append(("tags", tag))

        result = await self.request(project_endpoint(project_id, "/notes"), params=params)
        data = unwrap(result)
        notes = data.get("notes") if isinstance(data, dict) else data
        if isinstance(notes, list):
            return format_success(
                streamline_notes(notes, args.get("offset"), args.get("limit")),
                f"Retrieved {len(notes)} notes",
            )
        return format_success(data, "Retrieved notes")

    async def tool_get_note(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        note = unwrap(await self.request(self._note_path(project_id, args["id"])))
        return format_success(note, f"Retrieved {_note_label(note)}")

    async def tool_create_note(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        body = {
            "title": args["title"],
            "content": args["content"],
            "tags": args.get("tags") or [],
            "virtual_folder": args.get("virtual_folder") or "",
            "project_id": project_id,
            "created_by": args.get("created_by") or "mcp",
        }
        params = []
        if args.get("generate_embedding") is not None:
            params.append(("generate_embedding", flag(args["generate_embedding"])))

        note = unwrap(
            await self.request(project_endpoint(project_id, "/notes"), method="POST", json_body=body, params=params)
        )
        return format_success(note, f"Created {_note_label(note)}")

    async def tool_update_note(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        path = self._note_path(project_id, args["id"])
        params = []
        if args.get("update_embedding") is not None:
            params.append(("update_embedding", flag(args["update_embedding"])))

        if args.get("old_str") is not None and args.get("new_str") is not None:
            body: Dict[str, Any] = {
                "old_str": args["old_str"],
                "new_str": args["new_str"],
                "changed_by": args.get("changed_by") or "mcp",
            }
            for key in ("fuzzy_match", "fuzzy_threshold"):
                if args.get(key) is not None:
                    body[key] = args[key]
            if args.get("preview") is not None:
                params.insert(0, ("preview", flag(args["preview"])))

            result = await self.request(path, method="PATCH", json_body=body, params=params)
            envelope = result if isinstance(result, dict) else {}
            if args.get("preview"):
                return format_success(
                    unwrap(result),
                    envelope.get("message") or "Update preview generated successfully",
                    preview=True,
                )
            note = unwrap(result)
            return format_success(
                note,
                f"Updated {_note_label(note)}",
                fuzzyMatch=envelope.get("fuzzyMatch"),
                exactMatch=envelope.get("exactMatch") is not False,
            )

        body = {key: args[key] for key in ("title", "tags", "virtual_folder") if args.get(key) is not None}
        if not body:
            raise ValidationError(
                ("old_str", "new_str"),
                "No updates specified. Provide old_str/new_str for content updates "
                "or title/tags/virtual_folder for metadata updates.",
            )
        body["changed_by"] = args.get("changed_by") or "mcp"

        note = unwrap(await self.request(path, method="PUT", json_body=body, params=params))
        return format_success(note, f"Updated {_note_label(note)}")

    async def tool_delete_note(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        result = await self.request(
            self._note_path(project_id, args["id"]),
            method="DELETE",
            json_body={"deleted_by": args.get("deleted_by") or "mcp"},
        )
        return format_success(result, f"Deleted note (ID: {args['id']})")

    async def tool_generate_contexts(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        body = {
            "batch_size": args.get("batch_size") or 10,
            "force_regenerate": bool(args.get("force_regenerate")),
        }
        result = await self.request(
            project_endpoint(project_id, "/notes/contexts/generate"), method="POST", json_body=body
        )
        summary = unwrap(result)
        summary = summary if isinstance(summary, dict) else {}
        return format_success(
            result,
            "Generated AI contexts: {successful}/{processed} successful, {failed} failed".format(
                successful=summary.get("successful", 0),
                processed=summary.get("processed", 0),
                failed=summary.get("failed", 0),
            ),
        )

    async def tool_get_context_stats(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        result = await self.request(project_endpoint(project_id, "/notes/contexts/stats"))
        return format_success(result, f"Retrieved AI context statistics for project: {project_id}")

    async def tool_inspect_content(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        result = await self.request(self._note_path(project_id, args["id"], "/content/inspect"))
        return format_success(unwrap(result), "Content inspection completed")

    async def tool_preview_update(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        result = await self.request(
            self._note_path(project_id, args["id"], "/content/preview"),
            method="POST",
            json_body={"old_str": args["old_str"], "new_str": args["new_str"]},
        )
        data = unwrap(result)
        message = result.get("message") if isinstance(result, dict) else None
        return format_success(
            data,
            message or "Update preview generated",
            wouldSucceed=data.get("wouldSucceed") if isinstance(data, dict) else None,
        )

    async def tool_validate_update(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        result = await self.request(
            self._note_path(project_id, args["id"], "/content/validate"),
            method="POST",
            json_body={"old_str": args["old_str"], "new_str": args["new_str"]},
        )
        data = unwrap(result)
        message = result.get("message") if isinstance(result, dict) else None
        return format_success(
            data,
            message or "Update validation completed",
            isValid=data.get("isValid") if isinstance(data, dict) else None,
        )

    async def tool_suggest_patterns(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        result = await self.request(
            self._note_path(project_id, args["id"], "/content/suggest"),
            method="POST",
            json_body={"pattern": args["pattern"], "threshold": args.get("threshold") or 0.6},
        )
        data = unwrap(result)
        data = data if isinstance(data, dict) else {}
        return format_success(
            data,
            f"Found {data.get('count', 0)} similar patterns",
            suggestions=data.get("suggestions"),
        )
