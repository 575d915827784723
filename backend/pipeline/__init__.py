"""Story processing pipeline.

Each submission is one record moving through:

  pending ──claim──▶ processing ──▶ complete
                                └─▶ failed  (error_message + processing_time_ms)

Run for one story (process_story):
  1. Active prompt template for the story type (missing → failed).
  2. Visual / audio styles by ID (missing → "default" label, no modifiers).
  3. Text provider call, thinking level high. Speak/sketch runs attach the
     original recording/image so the model senses tone and style.
  4. Story JSON → panels renumbered 1..N; narration from `narration`,
     `script`, or the panels themselves.
  5. Narration audio (synthesis switched off: no audio, duration 0).
  6. ENABLE_IMAGE_GENERATION: one image per panel, sequential, each stored
     as it arrives; failed panels keep image_ref=None.
  7. ENABLE_VIDEO_GENERATION + at least one image + a random draw below
     VIDEO_GENERATION_PROBABILITY: ffmpeg video in DEFAULT_VIDEO_STYLE.
  8. Narratives, template ID, status and timing written in one save.

Speak and sketch submissions first transcribe / describe the upload
(process_speak_story, process_sketch_story), persist that text, then hand
over to process_story without releasing the claim.

Terminal states are final; there are no automatic retries.
"""

from .core import (  # noqa: F401
    process_sketch_story,
    process_speak_story,
    process_story,
)
from .narrative import (  # noqa: F401
    NO_NARRATION,
    StoryFormatError,
    extract_narration_from_panels,
    narration_script,
    parse_story_json,
    should_generate_video,
    synthesize_narration,
)
