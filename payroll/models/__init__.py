"""
Models module for Pydantic data models.

This module contains all Pydantic models used for request/response validation,
data serialization, and type safety throughout the application.
"""

from payroll.models.base import ListResponseModel, ResponseModel
from payroll.models.errors import HTTPDetail, HTTPException
from payroll.models.payroll_class import (
    CurrentPayrollClass,
    DatabaseHealth,
    PayrollClass,
    PayrollClassResponse,
    PayrollClassSwitch,
    RegistryReloadResponse,
    Resolution,
)
