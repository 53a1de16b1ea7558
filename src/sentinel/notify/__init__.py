"""Alert delivery channels."""

from sentinel.config import NotifierSettings
from sentinel.notify.base import LogNotifier, Notifier
from sentinel.notify.discord import DiscordNotifier, build_embed


def create_notifier(settings: NotifierSettings) -> Notifier:
    """Discord when a webhook URL is configured, otherwise log-only."""
    if settings.webhook_url.get_secret_value():
        return DiscordNotifier(settings)
    return LogNotifier()


__all__ = [
    "DiscordNotifier",
    "LogNotifier",
    "Notifier",
    "build_embed",
    "create_notifier",
]
