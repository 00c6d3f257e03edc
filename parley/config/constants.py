"""Hard-coded configuration constants not meant to be user-configurable."""

CONVERSATION_ID_LENGTH = 10
SHARE_TOKEN_LENGTH = 10
CONVERSATION_TITLE_MAX_CHARS = 100
DEFAULT_CONVERSATION_TITLE = "New Chat"
SYSTEM_DEVICE_ID = "system"
CONVERSATION_ID_HEADER = "X-Conversation-Id"
CONVERSATION_CREATED_HEADER = "X-Conversation-Created"
SOURCES_HEADER = "X-Sources"
