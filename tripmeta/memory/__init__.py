from tripmeta.memory.conversation import (
    DEFAULT_CONVERSATION_ID,
    ConversationRecord,
    ConversationStore,
    Message,
)

__all__ = [
    "DEFAULT_CONVERSATION_ID",
    "ConversationRecord",
    "ConversationStore",
    "Message",
]
