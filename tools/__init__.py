from .dispatch_tools import WebhookDispatchChannel, LogDispatchChannel, get_dispatch_channel

__all__ = [
    "WebhookDispatchChannel", "LogDispatchChannel", "get_dispatch_channel",
]
