"""Alert delivery sinks: live WebSocket hub and push notifier."""

from alertbot.notify.hub import AlertHub
from alertbot.notify.push import NullPushNotifier, PushNotifier, PushResult

__all__ = ["AlertHub", "NullPushNotifier", "PushNotifier", "PushResult"]
