from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class DashboardOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    dashboard_id: str
    dashboard_name: str
    dashboard_description: str | None
    organization_id: str | None
    created_by: str
    is_active: bool
    is_published: bool
    created_at: datetime
    updated_at: datetime


class DashboardUpdate(BaseModel):
    dashboard_name: str | None = None
    dashboard_description: str | None = None
    is_published: bool | None = None
