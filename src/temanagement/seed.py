"""Seed the database with demo departments, logins and employee profiles."""

import logging

from sqlalchemy.orm import Session

from .database import SessionLocal, init_db
from .models import AccountStatus, Department, Employee, User, UserRole
from .services import create_user


logger = logging.getLogger(__name__)

DEPARTMENTS = [
    {
        "name": "IT Department",
        "description": "Information Technology Department",
        "location": "Building A, Floor 3",
    },
    {
        "name": "Human Resources",
        "description": "Human Resources Department",
        "location": "Building A, Floor 1",
    },
    {
        "name": "Sales",
        "description": "Sales and Marketing Department",
        "location": "Building B, Floor 2",
    },
]

USERS = [
    {
        "email": "admin@temanagement.com",
        "password": "Admin@123",
        "role": UserRole.ADMIN,
        "first_name": "System",
        "last_name": "Administrator",
        "position": "System Administrator",
        "department": "IT Department",
    },
    {
        "email": "manager@temanagement.com",
        "password": "Manager@123",
        "role": UserRole.MANAGER,
        "first_name": "Sarah",
        "last_name": "Johnson",
        "position": "Engineering Manager",
        "department": "IT Department",
    },
    {
        "email": "employee@temanagement.com",
        "password": "Employee@123",
        "role": UserRole.EMPLOYEE,
        "first_name": "John",
        "last_name": "Doe",
        "position": "Software Developer",
        "department": "IT Department",
    },
]


def _get_or_create_department(session: Session, entry: dict) -> Department:
    department = session.query(Department).filter(Department.name == entry["name"]).first()
    if department is None:
        department = Department(**entry)
        session.add(department)
        session.commit()
        logger.info("department created: %s", department.name)
    return department


def seed(session: Session, rounds: int | None = None) -> None:
    """Create the demo records; existing rows are left untouched."""
    departments = {
        entry["name"]: _get_or_create_department(session, entry) for entry in DEPARTMENTS
    }

    for entry in USERS:
        user = session.query(User).filter(User.email == entry["email"]).first()
        if user is None:
            user = create_user(
                session,
                entry["email"],
                entry["password"],
                role=entry["role"],
                account_status=AccountStatus.ACTIVE,
                rounds=rounds,
            )
        else:
            logger.info("user exists, skipping: %s", user.email)

        if session.query(Employee).filter(Employee.user_id == user.id).first() is None:
            session.add(
                Employee(
                    user_id=user.id,
                    department_id=departments[entry["department"]].id,
                    first_name=entry["first_name"],
                    last_name=entry["last_name"],
                    position=entry["position"],
                )
            )
            session.commit()
            logger.info("employee profile created for %s", user.email)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    init_db()
    session = SessionLocal()
    try:
        seed(session)
    finally:
        session.close()
    logger.info("seed finished")


if __name__ == "__main__":
    main()
