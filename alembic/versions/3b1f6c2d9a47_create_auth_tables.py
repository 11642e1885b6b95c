"""create auth tables

Revision ID: 3b1f6c2d9a47
Revises: 
Create Date: 2026-10-19 09:12:31.402118

"""
from typing import Sequence, Union

from alembic import op
from temanagement import models  # noqa: F401
from temanagement.database import Base


# revision identifiers, used by Alembic.
revision: str = '3b1f6c2d9a47'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, departments and employees from the model metadata."""
    bind = op.get_bind()
    Base.metadata.create_all(bind)


def downgrade() -> None:
    """Drop the auth tables."""
    bind = op.get_bind()
    Base.metadata.drop_all(bind)
