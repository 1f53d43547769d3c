# Chat hub protocol constants (envelope keys, message types, limits)

# Envelope keys
K_TYPE = "type"
K_MESSAGES = "messages"
K_MESSAGE = "message"
K_COUNT = "count"

# Inbound message body keys
K_TEXT = "text"
K_ALIAS = "alias"
K_COLOR = "color"

# ChatMessage keys (wire form)
M_ID = "id"
M_TEXT = "text"
M_ALIAS = "alias"
M_COLOR = "color"
M_SENT_AT = "sentAt"

# Message types
T_HISTORY = "history"
T_MESSAGE = "message"
T_PRESENCE = "presence"

# Limits and fallbacks.
HISTORY_LIMIT = 200
TEXT_MAX_CHARS = 480
ALIAS_MAX_CHARS = 48
COLOR_MAX_CHARS = 64

DEFAULT_ALIAS = "Anonymous"
DEFAULT_COLOR = "bg-slate-100 text-slate-900"

# Connection lifecycle states
STATE_CONNECTING = "connecting"
STATE_ACTIVE = "active"
STATE_CLOSED = "closed"

DEFAULT_ENDPOINT_PATH = "/api/socket"
