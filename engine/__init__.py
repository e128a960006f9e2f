from engine.errors import (
    AssignmentEngineError,
    AuthorizationDenied,
    DuplicateAssignment,
    LearnerNotFound,
    LocationMismatch,
    NoCapacity,
    StorageFailure,
    TargetNotFound,
)
from engine.catalog import flatten_catalog, organize_by_location
from engine.identity import resolve_target, stable_session_id
from engine.categorizer import LearnerCategories, LearnerStatus, categorize
from engine.capacity import CapacityTracker
from engine.allocator import AssignmentAllocator, BulkResult, PlacementResult
from engine.auto_assign import (
    AutoAssignOrchestrator,
    AutoAssignStatus,
    AutoAssignSummary,
    CancelToken,
)

__all__ = [
    "AssignmentEngineError",
    "AuthorizationDenied",
    "DuplicateAssignment",
    "LearnerNotFound",
    "LocationMismatch",
    "NoCapacity",
    "StorageFailure",
    "TargetNotFound",
    "flatten_catalog",
    "organize_by_location",
    "resolve_target",
    "stable_session_id",
    "LearnerCategories",
    "LearnerStatus",
    "categorize",
    "CapacityTracker",
    "AssignmentAllocator",
    "BulkResult",
    "PlacementResult",
    "AutoAssignOrchestrator",
    "AutoAssignStatus",
    "AutoAssignSummary",
    "CancelToken",
]
