"""Main entry point for the AWS Cloud Operator."""

from __future__ import annotations

import os
import threading
from typing import Any

import kopf
from werkzeug.serving import make_server

from . import health
from . import logging as structured_logging
from .tracing import initialize_tracing

# Import handlers to register them - all handlers register themselves via @kopf decorators
from .handlers import bucket  # noqa: F401
from .handlers import cache_cluster  # noqa: F401
from .handlers import cache_subnet_group  # noqa: F401
from .handlers import provider_config  # noqa: F401
from .handlers import provisioned_product  # noqa: F401
from .handlers import replication_group  # noqa: F401


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Configure the operator."""
    # Set up structured JSON logging
    structured_logging.setup_structured_logging()

    # Use AnnotationsProgressStorage to avoid conflicts with status updates
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage()
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage()

    settings.posting.level = 0
    settings.networking.request_timeout = 30.0
    settings.execution.max_workers = int(os.getenv("MAX_WORKERS", "4"))

    # Start metrics HTTP server with health check endpoints
    metrics_port = int(os.getenv("METRICS_PORT", "8080"))
    combined_app = health.create_combined_wsgi_app()
    server = make_server("", metrics_port, combined_app, threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    initialize_tracing()
    health.set_ready(True)


@kopf.on.cleanup()
def shutdown(**_: Any) -> None:
    """Report not ready while the operator stops."""
    health.set_ready(False)
