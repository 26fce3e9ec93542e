"""Tests for the tool providers, driven through a scripted remote API."""

from __future__ import annotations

import json

import httpx
import pytest
import pytest_asyncio

from knowledge_bridge.providers import (
    CrossReferenceProvider,
    NotesProvider,
    ProjectProvider,
    SearchProvider,
    StatsProvider,
)
from knowledge_bridge.providers.search import build_search_params
from knowledge_bridge.sdk.gateway import ApiGateway

NOTES = "/api/projects/myproject/notes"


@pytest_asyncio.fixture
async def gateway(api_stub, make_config):
    async with api_stub.client() as http_client:
        yield ApiGateway(make_config(), client=http_client)


@pytest.mark.asyncio
async def test_missing_required_argument_issues_no_request(gateway, api_stub, context):
    provider = NotesProvider(gateway)

    result = await provider.invoke("get_note", {}, context)

    assert result["success"] is False
    assert result["error"] == "Missing required parameters: id"
    assert result["tool"] == "get_note"
    assert api_stub.calls == []


@pytest.mark.asyncio
async def test_null_required_argument_counts_as_missing(gateway, api_stub, context):
    provider = NotesProvider(gateway)

    result = await provider.invoke("create_note", {"title": "T", "content": None}, context)

    assert result["error"] == "Missing required parameters: content"
    assert api_stub.calls == []


@pytest.mark.asyncio
async def test_get_note_uses_session_project_and_credential(gateway, api_stub, context):
    api_stub.add("GET", f"{NOTES}/42", httpx.Response(200, json={"success": True, "data": {"id": 42, "title": "Plan"}}))

    result = await NotesProvider(gateway).invoke("get_note", {"id": 42}, context)

    assert result["success"] is True
    assert result["data"] == {"id": 42, "title": "Plan"}
    assert result["message"] == "Retrieved Plan (ID: 42)"
    assert api_stub.calls[0].headers["X-API-Key"] == "employee-myproject-secret123"


@pytest.mark.asyncio
async def test_explicit_project_argument_overrides_session(gateway, api_stub, context):
    api_stub.add("GET", "/api/projects/other/notes/1", httpx.Response(200, json={"data": {"id": 1}}))

    result = await NotesProvider(gateway).invoke("get_note", {"id": 1, "projectId": "other"}, context)

    assert result["success"] is True
    assert len(api_stub.calls) == 1


@pytest.mark.asyncio
async def test_list_notes_is_streamlined_with_filters(gateway, api_stub, context):
    api_stub.add("GET", NOTES, httpx.Response(200, json={"data": {"notes": [{"id": 1}, {"id": 2}]}}))

    result = await NotesProvider(gateway).invoke(
        "list_notes", {"limit": 2, "offset": 4, "tags": ["a", "b"], "virtual_folder": "/work"}, context
    )

    assert result["data"] == {"notes": [{"id": 1}, {"id": 2}], "count": 2, "offset": 4, "limit": 2}
    assert result["message"] == "Retrieved 2 notes"
    params = api_stub.calls[0].url.params
    assert params["limit"] == "2"
    assert params.get_list("tags") == ["a", "b"]
    assert params["virtual_folder"] == "/work"


@pytest.mark.asyncio
async def test_create_note_defaults_creator(gateway, api_stub, context):
    api_stub.add("POST", NOTES, httpx.Response(201, json={"data": {"id": 9, "title": "New"}}))

    result = await NotesProvider(gateway).invoke(
        "create_note", {"title": "New", "content": "body", "generate_embedding": False}, context
    )

    assert result["message"] == "Created New (ID: 9)"
    request = api_stub.calls[0]
    assert json.loads(request.content) == {
        "title": "New",
        "content": "body",
        "tags": [],
        "virtual_folder": "",
        "project_id": "myproject",
        "created_by": "mcp",
    }
    assert request.url.params["generate_embedding"] == "false"


@pytest.mark.asyncio
async def test_update_note_with_patterns_patches(gateway, api_stub, context):
    api_stub.add(
        "PATCH",
        f"{NOTES}/5",
        httpx.Response(200, json={"data": {"id": 5, "title": "T"}, "fuzzyMatch": None, "exactMatch": True}),
    )

    result = await NotesProvider(gateway).invoke(
        "update_note", {"id": 5, "old_str": "a", "new_str": "b", "fuzzy_match": True}, context
    )

    assert result["success"] is True
    assert result["exactMatch"] is True
    body = json.loads(api_stub.calls[0].content)
    assert body == {"old_str": "a", "new_str": "b", "changed_by": "mcp", "fuzzy_match": True}


@pytest.mark.asyncio
async def test_update_note_preview_is_flagged(gateway, api_stub, context):
    api_stub.add("PATCH", f"{NOTES}/5", httpx.Response(200, json={"data": {"diff": "..."}, "message": "Preview"}))

    result = await NotesProvider(gateway).invoke(
        "update_note", {"id": 5, "old_str": "a", "new_str": "b", "preview": True}, context
    )

    assert result["preview"] is True
    assert result["message"] == "Preview"
    assert api_stub.calls[0].url.params["preview"] == "true"


@pytest.mark.asyncio
async def test_update_note_metadata_puts(gateway, api_stub, context):
    api_stub.add("PUT", f"{NOTES}/5", httpx.Response(200, json={"data": {"id": 5, "title": "Renamed"}}))

    result = await NotesProvider(gateway).invoke("update_note", {"id": 5, "title": "Renamed"}, context)

    assert result["success"] is True
    assert json.loads(api_stub.calls[0].content) == {"title": "Renamed", "changed_by": "mcp"}


@pytest.mark.asyncio
async def test_update_note_without_changes_is_rejected_locally(gateway, api_stub, context):
    result = await NotesProvider(gateway).invoke("update_note", {"id": 5}, context)

    assert result["success"] is False
    assert result["error"].startswith("No updates specified")
    assert api_stub.calls == []


@pytest.mark.asyncio
async def test_remote_failure_becomes_error_envelope(gateway, api_stub, context):
    api_stub.add("DELETE", f"{NOTES}/5", httpx.Response(404, json={"error": "Note not found"}))

    result = await NotesProvider(gateway).invoke("delete_note", {"id": 5}, context)

    assert result["success"] is False
    assert "Note not found" in result["error"]
    assert "status=404" in result["error"]


def test_search_params_omit_defaults():
    params = build_search_params(
        {"query": "cats", "mode": "keyword", "highlight_matches": True, "max_connections": 5, "tags": ["x"]}
    )
    assert params == [("q", "cats"), ("tags", "x")]

    params = build_search_params({"query": "cats", "mode": "hybrid", "highlight_matches": False})
    assert ("mode", "hybrid") in params
    assert ("highlight_matches", "false") in params


@pytest.mark.asyncio
async def test_keyword_search_message(gateway, api_stub, context):
    api_stub.add("GET", f"{NOTES}/search", httpx.Response(200, json={"data": {"results": [{"id": 1}]}}))

    result = await SearchProvider(gateway).invoke("search", {"query": "cats"}, context)

    assert result["message"] == 'Found 1 notes matching "cats"'
    assert api_stub.calls[0].url.params["q"] == "cats"


@pytest.mark.asyncio
async def test_semantic_search_degrades_when_vector_store_down(gateway, api_stub, context):
    api_stub.add("GET", f"{NOTES}/search", httpx.Response(500, json={"error": "Embedding service unavailable"}))

    result = await SearchProvider(gateway).invoke("search", {"query": "cats", "mode": "semantic"}, context)

    assert result["success"] is True
    assert result["data"] == {"results": [], "total": 0}
    assert "Semantic search unavailable" in result["message"]


@pytest.mark.asyncio
async def test_hybrid_search_falls_back_to_keyword(gateway, api_stub, context):
    def _search(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("mode") == "hybrid":
            return httpx.Response(500, json={"error": "ChromaDB connection lost"})
        return httpx.Response(200, json={"data": {"results": [{"id": 3}, {"id": 4}]}})

    api_stub.add("GET", f"{NOTES}/search", _search)

    result = await SearchProvider(gateway).invoke(
        "search", {"query": "cats", "mode": "hybrid", "semantic_weight": 0.5}, context
    )

    assert result["success"] is True
    assert result["message"] == 'Found 2 notes matching "cats"'
    assert len(api_stub.calls) == 2
    assert "semantic_weight" not in api_stub.calls[1].url.params


@pytest.mark.asyncio
async def test_unrelated_search_failure_is_reported(gateway, api_stub, context):
    api_stub.add("GET", f"{NOTES}/search", httpx.Response(500, json={"error": "database locked"}))

    result = await SearchProvider(gateway).invoke("search", {"query": "cats", "mode": "semantic"}, context)

    assert result["success"] is False
    assert "database locked" in result["error"]


@pytest.mark.asyncio
async def test_graph_search_falls_back_to_keyword(gateway, api_stub, context):
    api_stub.add("GET", "/api/projects/myproject/search/graph", httpx.Response(500, json={"error": "Graph index missing"}))
    api_stub.add("GET", f"{NOTES}/search", httpx.Response(200, json={"data": {"results": []}}))

    result = await SearchProvider(gateway).invoke("graph_search", {"query": "cats", "maxResults": 10}, context)

    assert result["success"] is True
    assert result["message"] == 'Found 0 notes matching "cats"'
    assert "maxResults" not in api_stub.calls[1].url.params


@pytest.mark.asyncio
async def test_graph_search_unrelated_failure_does_not_fall_back(gateway, api_stub, context):
    api_stub.add("GET", "/api/projects/myproject/search/graph", httpx.Response(500, json={"error": "database locked"}))

    result = await SearchProvider(gateway).invoke("graph_search", {"query": "cats"}, context)

    assert result["success"] is False
    assert len(api_stub.calls) == 1


@pytest.mark.asyncio
async def test_list_projects_is_static(gateway, api_stub, context):
    result = await ProjectProvider(gateway).invoke("list_projects", {}, context)

    assert result["success"] is True
    assert result["data"]["available"] is False
    assert api_stub.calls == []


@pytest.mark.asyncio
async def test_project_info_not_found_is_reported_unavailable(gateway, api_stub, context):
    api_stub.add("GET", "/api/projects/myproject/stats", httpx.Response(404, json={"error": "no such project"}))

    result = await ProjectProvider(gateway).invoke("get_project_info", {}, context)

    assert result["success"] is True
    assert result["data"]["available"] is False
    assert result["message"] == "Project myproject not accessible"


@pytest.mark.asyncio
async def test_current_context_degrades_on_server_error(gateway, api_stub, context):
    api_stub.add("GET", "/api/projects/myproject/stats", httpx.Response(500, json={"error": "boom"}))

    result = await ProjectProvider(gateway).invoke("get_current_context", {}, context)

    assert result["success"] is True
    assert result["data"]["currentProject"] == "myproject"
    assert result["data"]["hasApiKey"] is True
    assert result["data"]["projectInfo"] is None
    assert "boom" in result["data"]["warning"]


@pytest.mark.asyncio
async def test_system_stats_not_found_returns_basic_info(gateway, api_stub, context):
    api_stub.add("GET", "/api/stats", httpx.Response(404))

    result = await StatsProvider(gateway).invoke("get_system_stats", {}, context)

    assert result["message"] == "Basic system information"
    assert result["data"]["api"]["url"] == context.api_url


@pytest.mark.asyncio
async def test_folder_stats_quotes_folder_segment(gateway, api_stub, context):
    api_stub.add("GET", "/api/projects/myproject/folders/a/b/stats", httpx.Response(404))

    result = await StatsProvider(gateway).invoke("get_folder_stats", {"folder": "a/b"}, context)

    assert result["data"]["available"] is False
    assert api_stub.calls[0].url.raw_path == b"/api/projects/myproject/folders/a%2Fb/stats"


@pytest.mark.asyncio
async def test_add_wikilink_is_bidirectional_by_default(gateway, api_stub, context):
    api_stub.add("POST", f"{NOTES}/1/links", httpx.Response(201, json={"data": {"created": True}}))

    result = await CrossReferenceProvider(gateway).invoke(
        "add_wikilink", {"noteId": 1, "targetNoteId": 2}, context
    )

    assert result["message"] == "Created bidirectional wikilink between notes 1 and 2"
    assert json.loads(api_stub.calls[0].content) == {"target_note_id": 2, "bidirectional": True}


@pytest.mark.asyncio
async def test_knowledge_base_health_summary(gateway, api_stub, context):
    api_stub.add(
        "GET",
        "/api/projects/myproject/health/links",
        httpx.Response(
            200,
            json={
                "data": {
                    "healthStatus": "good",
                    "overview": {"linkIntegrityScore": 90, "validLinks": 9, "totalWikilinks": 10},
                }
            },
        ),
    )

    result = await CrossReferenceProvider(gateway).invoke("get_knowledge_base_health", {}, context)

    assert result["message"] == "Knowledge base health: 90% integrity (good) - 9/10 links valid"


@pytest.mark.asyncio
async def test_unknown_tool_on_provider_is_error_envelope(gateway, context):
    result = await StatsProvider(gateway).invoke("get_note", {"id": 1}, context)

    assert result["success"] is False
    assert result["error"] == "Unknown tool: get_note"
