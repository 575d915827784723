"""Public feed of completed stories."""

import math

from fastapi import APIRouter, HTTPException, Query

from backend import storage

router = APIRouter()


@router.get("/feed")
async def get_feed(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort: str = "recent",
):
    """Paginated complete stories; sort is recent, popular, viewed or oldest."""
    stories, total = storage.list_feed(page, limit, sort)
    return {
        "stories": [s.model_dump(mode="json", exclude={"error_message"}) for s in stories],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
    }


@router.get("/feed/{story_id}")
async def get_feed_story(story_id: str):
    """Get a single story."""
    story = storage.get_story(story_id)
    if not story:
        raise HTTPException(404, "Story not found")
    return {"story": story.model_dump(mode="json")}


@router.post("/feed/{story_id}/view")
async def view_story(story_id: str):
    """Increment a story's view count."""
    story = storage.increment_views(story_id)
    if not story:
        raise HTTPException(404, "Story not found")
    return {"views": story.metadata.views}


@router.post("/feed/{story_id}/like")
async def like_story(story_id: str):
    """Increment a story's like count."""
    story = storage.increment_likes(story_id)
    if not story:
        raise HTTPException(404, "Story not found")
    return {"likes": story.metadata.likes}
