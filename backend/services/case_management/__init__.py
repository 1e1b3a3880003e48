"""
Case management service - report lifecycle operations.

This module handles:
    - Creating reports (cases)
    - Volunteer responses (offers of help)
    - Claiming a case with a volunteer's response
    - Status progression (arrived / resolved / closed)
    - Querying reports (nearby, all, by reporter)
"""

from .case_lifecycle import (
    CASE_TRANSITIONS,
    CaseResult,
    create_case,
    respond_to_case,
    claim_case,
    update_case_status,
    get_case,
    list_cases_near,
    list_cases_all,
    list_cases_by_reporter,
    list_responses,
)
from .expiry import is_expired, expiry_cutoff

__all__ = [
    # Lifecycle operations
    "CASE_TRANSITIONS",
    "CaseResult",
    "create_case",
    "respond_to_case",
    "claim_case",
    "update_case_status",
    # Queries
    "get_case",
    "list_cases_near",
    "list_cases_all",
    "list_cases_by_reporter",
    "list_responses",
    # Expiry
    "is_expired",
    "expiry_cutoff",
]
