from payroll.dependencies.common import (
    ContextRouterDep,
    PayrollClassServiceDep,
    get_payroll_class_service,
)

__all__ = ["ContextRouterDep", "PayrollClassServiceDep", "get_payroll_class_service"]
