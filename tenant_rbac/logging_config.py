from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Minimal logging configuration for this repo.

    Notes:
    - stdlib logging only; uvicorn already configures handlers.
    - Sets levels for the `tenant_rbac` logger tree. `RBAC_LOG_LEVEL=DEBUG` shows
      every permission decision; cache health and audit degradation log at WARNING.
    - The `tenant_rbac.audit` logger carries one line per decision when the
      logging audit sink is in use.
    """

    normalized = level.upper()
    logging.getLogger("tenant_rbac").setLevel(normalized)
    # Ensure child loggers under tenant_rbac.* inherit this level.
    logging.getLogger("tenant_rbac").propagate = True
