from .gateway import (
    NOTIFY_STATUSES,
    DefaultNotificationGateway,
    NotificationGateway,
    NotificationResult,
    NullNotificationGateway,
)

__all__ = [
    'NOTIFY_STATUSES',
    'DefaultNotificationGateway',
    'NotificationGateway',
    'NotificationResult',
    'NullNotificationGateway',
]
