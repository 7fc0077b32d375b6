"""
Observability Module for tenant provisioning

Provides structured logging with correlation IDs (tenant, workflow, stage)
so a provisioning attempt can be followed from the onboarding request through
the Temporal workflow down to each remote create/delete call.
"""

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    with_correlation,
    log_activity_start,
    log_activity_complete,
    log_activity_error,
)

__all__ = [
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "with_correlation",
    "log_activity_start",
    "log_activity_complete",
    "log_activity_error",
]
