"""Employee directory read-model.

Only the columns the leave workflow needs: identity and the reporting line.
Employee CRUD lives in the HR core system that owns this table.
"""

from __future__ import annotations

import uuid
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timeoff.common.audit import TimestampMixin
from timeoff.database import Base


class Employee(Base, TimestampMixin):
    __tablename__ = "employees"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    employee_code: Mapped[str] = mapped_column(sa.String(20), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    last_name: Mapped[Optional[str]] = mapped_column(sa.String(100))
    email: Mapped[str] = mapped_column(sa.String(255), unique=True, nullable=False)
    manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        sa.Uuid, sa.ForeignKey("employees.id", ondelete="SET NULL"), index=True,
    )
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True, nullable=False)

    # Relationships
    manager: Mapped[Optional[Employee]] = relationship(
        remote_side="Employee.id",
        foreign_keys=[manager_id],
    )

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def __repr__(self) -> str:
        return f"<Employee {self.employee_code} {self.display_name}>"
