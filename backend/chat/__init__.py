"""Anonymous chat: matchmaking hub, visual messages, AI co-author.

Frames (client -> server), JSON tagged by `type`:
  register{userId}                  bind this socket to an anonymous ID
  find_match{matchType:"random"}    join the FIFO queue or get matched
  send_message{roomId, content}     persist + forward to the peer
  send_visual_message{roomId, content, panelCount?}
                                    quota check, placeholder, 2-5 panel comic
  start_ai_story{roomId, prompt}    AI co-author writes an opening
  send_ai_message{roomId, content}  AI co-author continues the story
  join_room{roomId}                 last 50 messages, oldest first
  leave_room{roomId}                tell the peer
  get_rooms                         20 most recent rooms with a preview

Replies: match_found, waiting, already_searching, message, visual_generating,
visual_message, visual_error, visual_limit_reached, ai_thinking,
ai_story_response, ai_error, room_history, rooms_list, user_disconnected,
error.
"""

from .coauthor import CoAuthor  # noqa: F401
from .server import (  # noqa: F401
    ChatError,
    ChatHub,
    ChatSession,
    Connection,
    WebSocketConnection,
    serve_websocket,
)
from .visual import VisualStory, VisualStoryError, VisualStoryService  # noqa: F401
