from .transport import AWSNotificationTransport, NotificationTransport
from .dispatcher import NotificationDispatcher

__all__ = ["AWSNotificationTransport", "NotificationTransport", "NotificationDispatcher"]
