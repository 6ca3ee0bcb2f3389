"""chatwarden - a moderating, chatty participant for group chats."""

__version__ = "0.3.0"
