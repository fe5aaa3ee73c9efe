"""Token detection loop, candidate sources and wiring."""

from mintsentry.services.detection.context import (
    DetectionContext,
    build_detection_context,
    get_detection_context,
    init_detection_context,
    reset_detection_context,
)
from mintsentry.services.detection.interfaces import (
    CriteriaStore,
    InMemoryCriteriaStore,
    LogNotificationSink,
    NotificationSink,
    PurchaseExecutor,
    SimulatedPurchaseExecutor,
)
from mintsentry.services.detection.loop import DetectionLoop
from mintsentry.services.detection.sources import (
    BoostedFeedSource,
    CandidateSource,
    MintSubscriptionSource,
)

__all__ = [
    "BoostedFeedSource",
    "CandidateSource",
    "CriteriaStore",
    "DetectionContext",
    "DetectionLoop",
    "InMemoryCriteriaStore",
    "LogNotificationSink",
    "MintSubscriptionSource",
    "NotificationSink",
    "PurchaseExecutor",
    "SimulatedPurchaseExecutor",
    "build_detection_context",
    "get_detection_context",
    "init_detection_context",
    "reset_detection_context",
]
