import logging

from fastapi import FastAPI, Request
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from kombu.exceptions import OperationalError

import models  # noqa: F401
from core.celery import celery_app
from core.config import settings
from core.db import Base, engine
from core.errors import DomainError
from core.log import configure_logging
from routes.auth import router as auth_router
from routes.categories import router as categories_router
from routes.coupons import router as coupons_router
from routes.dashboard import router as dashboard_router
from routes.orders import router as orders_router
from routes.plans import router as plans_router
from routes.products import router as products_router
from routes.public import router as public_router
from routes.stores import router as stores_router
from routes.uploads import router as uploads_router
from routes.webhooks import router as webhooks_router

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
    }
    openapi_schema["security"] = [{"BearerAuth": []}]
    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.to_dict())
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Ensure tables exist (for dev/test; in prod use Alembic)
Base.metadata.create_all(bind=engine)

app.include_router(auth_router)
app.include_router(stores_router)
# Registered before products so /products/categories is not read as a product id
app.include_router(categories_router)
app.include_router(products_router)
app.include_router(coupons_router)
app.include_router(orders_router)
app.include_router(public_router)
app.include_router(dashboard_router)
app.include_router(plans_router)
app.include_router(webhooks_router)
app.include_router(uploads_router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
    }


@app.get("/celery-health")
async def celery_health_check():
    """Check Celery worker status"""
    try:
        stats = celery_app.control.inspect().stats()
    except OperationalError as e:
        return {"status": "unhealthy", "error": str(e)}
    if stats:
        return {"status": "healthy", "workers": len(stats)}
    return {"status": "no_workers", "message": "No Celery workers running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.DEBUG,
    )
