from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tenant_rbac.db.base import Base, new_id, utcnow


class Dashboard(Base):
    __tablename__ = "dashboards"

    # Row-scoping metadata read by tenant_rbac.db.filters:
    # - own scope narrows on the owner column
    # - organization scope narrows on the organization column
    __rbac_resource__ = "dashboards"
    __rbac_owner_column__ = "created_by"
    __rbac_organization_column__ = "organization_id"

    dashboard_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    dashboard_name: Mapped[str] = mapped_column(String(255), nullable=False)
    dashboard_description: Mapped[str | None] = mapped_column(Text, nullable=True)

    organization_id: Mapped[str | None] = mapped_column(
        ForeignKey("organizations.organization_id"), nullable=True, index=True
    )
    created_by: Mapped[str] = mapped_column(ForeignKey("users.user_id"), nullable=False, index=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
