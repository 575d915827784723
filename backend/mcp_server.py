"""FastMCP server exposing the story archive to agents as MCP tools.

Tools:
  - search_similar_stories(query, limit) : stories whose text or panels match
  - get_artistic_styles(category)        : available visual styles
  - get_story(story_id)                  : one story's panels and status

Reads go through backend.storage, so init_storage() must have run (tests do
this in conftest; __main__ uses DATA_DIR or ./data).

Usage:
    uv run python -m backend.mcp_server
"""

from typing import Any

from mcp.server.fastmcp import FastMCP

from backend import storage

mcp = FastMCP("ananse-stories")


@mcp.tool()
def search_similar_stories(query: str, limit: int = 5) -> dict[str, Any]:
    """Find existing stories matching a theme or keyword, newest first."""
    stories = storage.search_stories(query, limit=max(1, limit))
    return {
        "count": len(stories),
        "stories": [storage.story_summary(s) for s in stories],
    }


@mcp.tool()
def get_artistic_styles(category: str | None = None) -> dict[str, Any]:
    """List active visual styles, optionally filtered by a category word."""
    styles = storage.list_artistic_styles()
    if category:
        needle = category.lower()
        styles = [
            s for s in styles
            if needle in " ".join([
                s.slug, s.name, s.description,
                s.characteristics.mood, s.characteristics.artistic_influence,
            ]).lower()
        ]
    return {
        "count": len(styles),
        "styles": [
            {
                "id": s.id,
                "name": s.name,
                "slug": s.slug,
                "description": s.description,
                "modifiers": s.prompt_modifiers,
            }
            for s in styles
        ],
    }


@mcp.tool()
def get_story(story_id: str) -> dict[str, Any]:
    """Fetch one story's status, source text and panels."""
    story = storage.get_story(story_id)
    if story is None:
        return {"found": False, "error": f"Story {story_id} not found"}
    return {
        "found": True,
        "id": story.id,
        "type": story.type,
        "status": story.status,
        "text": story.original_content.text,
        "panels": [p.model_dump() for p in story.visual_narrative.panels],
        "narration": story.audio_narrative.script,
    }


if __name__ == "__main__":
    import os
    from pathlib import Path

    storage.init_storage(Path(os.getenv("DATA_DIR", "data")))
    mcp.run()
