"""
Service layer between the API controllers and the database router.
"""

from payroll.service.payroll_class import CrossClassResult, PayrollClassService
from payroll.service.session import RequestSession, SessionResolver

__all__ = [
    "CrossClassResult",
    "PayrollClassService",
    "RequestSession",
    "SessionResolver",
]
