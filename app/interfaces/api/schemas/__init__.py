from .notification import (
    AffectedRowsRead,
    BroadcastCreate,
    BroadcastReportRead,
    BroadcastResultRead,
    BroadcastTargets,
    NotificationCreate,
    NotificationMarkReadRequest,
    NotificationPageRead,
    NotificationRead,
    RetryFailedRead,
    RetryFailedRequest,
    UnreadCountRead,
)

__all__ = [
    "AffectedRowsRead",
    "BroadcastCreate",
    "BroadcastReportRead",
    "BroadcastResultRead",
    "BroadcastTargets",
    "NotificationCreate",
    "NotificationMarkReadRequest",
    "NotificationPageRead",
    "NotificationRead",
    "RetryFailedRead",
    "RetryFailedRequest",
    "UnreadCountRead",
]
