from payroll.repository.registry import SchemaRegistry

__all__ = ["SchemaRegistry"]
