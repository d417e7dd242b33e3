"""Acme SaaS application factory.

Usage::

    from examples.acme_saas.app import create_acme_app

    app = create_acme_app()
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from tenantforge.infra.fastapi import AppSettings, create_app
from tenantforge.tenancy.settings import TenancySettings

if TYPE_CHECKING:
    from fastapi import FastAPI

    from tenantforge.tenancy.pipeline import PipelineQueue

ROUTES_PATH = Path(__file__).parent / "routes"

# Entry points excluded because they require external services.
_DEFAULT_EXCLUDE_NAMES = frozenset(
    {
        "taskiq",  # Needs Redis broker
    }
)


def create_acme_app(
    *,
    tenancy_settings: TenancySettings | None = None,
    pipeline_queue: PipelineQueue | None = None,
    exclude_names: frozenset[str] | None = None,
) -> FastAPI:
    """Create the Acme SaaS app.

    Args:
        tenancy_settings: Overrides the environment-loaded settings; the
            route directory always points at this example's ``routes``.
        pipeline_queue: Queue used for queued provisioning pipelines.
        exclude_names: Entry-point names to suppress.
    """
    settings = tenancy_settings or TenancySettings()
    settings = settings.model_copy(update={"routes_path": ROUTES_PATH})
    return create_app(
        settings=AppSettings(title="Acme SaaS", version="0.1.0"),
        tenancy_settings=settings,
        pipeline_queue=pipeline_queue,
        exclude_names=exclude_names if exclude_names is not None else _DEFAULT_EXCLUDE_NAMES,
    )
