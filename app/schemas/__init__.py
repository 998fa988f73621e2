"""
Pydantic schemas for request validation
"""
from .api_schemas import (
    AppealRequest,
    AssignRequest,
    BulkModerateRequest,
    ModerateContentRequest,
    QueueListParams,
    ReportListParams,
    ReportRequest,
    ResolveReportRequest,
    ReviewRequest,
    RuleToggleRequest,
    StatisticsParams,
)

__all__ = [
    'ModerateContentRequest',
    'BulkModerateRequest',
    'AppealRequest',
    'ReportRequest',
    'ResolveReportRequest',
    'ReportListParams',
    'QueueListParams',
    'AssignRequest',
    'ReviewRequest',
    'RuleToggleRequest',
    'StatisticsParams'
]
