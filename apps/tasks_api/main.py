"""
Tasks API (FastAPI).

Функции:
- /health
- /metrics
- постановка задач репозитория и сборки в очереди (202 Accepted)
- admin: состояние очередей, readiness

CORS: браузерный клиент платформы шлёт POST/DELETE с Authorization или
X-API-Key, поэтому preflight разрешает только эти методы и заголовки.
"""

from __future__ import annotations

from typing import Any

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from apps.tasks_api.routers.admin import monitored_queues
from apps.tasks_api.routers.admin import router as admin_router
from apps.tasks_api.routers.projects import router as projects_router
from docs_platform.common.config import get_settings, is_prod_env, parse_csv
from docs_platform.common.logging import get_project_logger, setup_logging
from docs_platform.common.metrics import refresh_queue_metrics, setup_metrics_endpoint
from docs_platform.services.readiness_service import enforce_startup_readiness

log = get_project_logger()

CORS_METHODS = ["GET", "POST", "DELETE"]
CORS_HEADERS = ["Authorization", "Content-Type", "X-API-Key"]


def cors_options() -> dict[str, Any]:
    """
    Параметры CORSMiddleware из настроек.

    - пустой CORS_ALLOWED_ORIGINS означает '*'
    - '*' в prod запрещён (RuntimeError на старте)
    - с '*' credentials выключаются
    """
    s = get_settings()
    origins = parse_csv(s.cors_allowed_origins) or ["*"]
    wildcard = "*" in origins

    if wildcard and is_prod_env(s.app_env):
        raise RuntimeError("CORS wildcard '*' запрещён в APP_ENV=prod")

    return {
        "allow_origins": ["*"] if wildcard else origins,
        "allow_methods": CORS_METHODS,
        "allow_headers": CORS_HEADERS,
        "allow_credentials": bool(s.cors_allow_credentials) and not wildcard,
    }


def _create_app() -> FastAPI:
    app = FastAPI(title="Docs Platform Tasks API", version="0.1.0")
    app.state.broker = None
    app.add_middleware(CORSMiddleware, **cors_options())

    def _queue_metrics() -> None:
        broker = app.state.broker
        if broker is not None:
            refresh_queue_metrics(broker, monitored_queues())

    setup_metrics_endpoint(app, service="tasks-api", queue_metrics=_queue_metrics)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"ok": True}

    @app.on_event("shutdown")
    def close_broker() -> None:
        broker = app.state.broker
        if broker is not None:
            broker.close()
            app.state.broker = None
            log.info("broker_closed")

    app.include_router(projects_router, prefix="/v1")
    app.include_router(admin_router, prefix="/v1")

    return app


setup_logging()
enforce_startup_readiness(service_name="tasks-api")

app = _create_app()


def main() -> None:
    s = get_settings()
    uvicorn.run(app, host=s.api_host, port=s.api_port, log_config=None)


if __name__ == "__main__":
    main()
