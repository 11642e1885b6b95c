from .employee import Department, Employee
from .user import AccountStatus, User, UserRole

__all__ = ["AccountStatus", "Department", "Employee", "User", "UserRole"]
