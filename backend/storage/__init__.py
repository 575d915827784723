"""File-based JSON storage.

Data layout:
  data/
    stories/<id>.json        Story records (status, narratives, metadata)
    chat/
      rooms/<id>.json        Chat rooms (participants, continuation token, context)
      messages/<id>.json     Per-room message log, oldest first
    media/
      <id>.bin               Raw blob (upload, panel image, video)
      <id>.json              MediaInfo sidecar (filename, content type, size)
    styles/                  User overrides for the preset kinds below
  presets/
    artistic-styles/         Built-in visual styles (merged at read time)
    audio-styles/            Built-in narration styles
    prompt-templates/        Built-in story prompts, one per story type

IDs are 32 lowercase hex chars; lookups with anything else return None.

Preset merging: list/get functions merge presets with data/styles/; user
data wins on ID collision.

Status transitions: claim_story() is a compare-and-swap from `pending` to
`processing`; complete_story() and fail_story() never rewrite a record that
is already terminal.
"""

# Re-export all public symbols so `from backend import storage` keeps working.

from .core import (  # noqa: F401
    data_dir,
    init_storage,
    is_valid_id,
    media_dir,
    messages_dir,
    presets_dir,
    rooms_dir,
    stories_dir,
    styles_dir,
)

from .stories import (  # noqa: F401
    claim_story,
    complete_story,
    create_story,
    fail_story,
    get_story,
    increment_likes,
    increment_views,
    list_feed,
    list_stories,
    save_transcript,
    search_stories,
    story_summary,
)

from .chat import (  # noqa: F401
    append_message,
    count_messages,
    count_visual_messages_since,
    create_room,
    delete_room,
    find_room_for_pair,
    get_message,
    get_messages,
    get_room,
    list_rooms,
    list_rooms_for_user,
    reconcile_stale_visual_messages,
    touch_room,
    update_message,
    update_room,
)

from .styles import (  # noqa: F401
    get_active_prompt_template,
    get_artistic_style,
    get_artistic_style_by_slug,
    get_audio_style,
    get_audio_style_by_slug,
    list_artistic_styles,
    list_audio_styles,
    list_prompt_templates,
    resolve_style_ids,
    user_styles_dir,
)

from .media import (  # noqa: F401
    delete_media,
    get_media_info,
    media_exists,
    media_path,
    put_media,
    read_media,
)
