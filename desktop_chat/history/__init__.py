from .models import Conversation, Message, Settings, generate_title
from .store import ConversationStore, JsonFileStore, SettingsStore

__all__ = [
    "Conversation",
    "ConversationStore",
    "JsonFileStore",
    "Message",
    "Settings",
    "SettingsStore",
    "generate_title",
]
