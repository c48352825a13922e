"""Domain models for the card registration engine.

This package contains the value types that flow between ingestion, mapping,
the SOAP layer and the execution engine.
"""

from .card_profile import CardProfile
from .config_models import EngineConfig, ExecutionConfig, IngestConfig, RetryConfig, SoapConfig
from .event_record import EventRecord, EventType
from .execution_result import ErrorCode, ExecutionError, ExecutionResult, RowDetail, RowOutcome
from .row_override import OverrideTable, RowOverride
from .row_status import RowState, RowStatus

__all__ = [
    # Configuration models
    "EngineConfig",
    "ExecutionConfig",
    "IngestConfig",
    "RetryConfig",
    "SoapConfig",
    # Row models
    "CardProfile",
    "OverrideTable",
    "RowOverride",
    "RowState",
    "RowStatus",
    # Results / events
    "ErrorCode",
    "EventRecord",
    "EventType",
    "ExecutionError",
    "ExecutionResult",
    "RowDetail",
    "RowOutcome",
]
