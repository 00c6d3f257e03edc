from .reconciler import (
    ChatClient,
    ChatClientError,
    ConversationIdentity,
    ConversationIdentityError,
    IdentityState,
    ThrottledRenderer,
    TurnResult,
)

__all__ = [
    "ChatClient",
    "ChatClientError",
    "ConversationIdentity",
    "ConversationIdentityError",
    "IdentityState",
    "ThrottledRenderer",
    "TurnResult",
]
