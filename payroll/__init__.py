"""
Payroll back-office service.

Routes the database calls of each request to the schema of its payroll class.
"""

from payroll.context import SessionContext
from payroll.routing import ContextRouter, PendingSwitch

__all__ = ["ContextRouter", "PendingSwitch", "SessionContext"]
