from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from certisure.api.routes.audit_logs import router as audit_logs_router
from certisure.api.routes.billing import router as billing_router
from certisure.api.routes.certificates import router as certificates_router
from certisure.api.routes.email_templates import router as email_templates_router
from certisure.api.routes.organizations import router as organizations_router
from certisure.api.routes.plans import router as plans_router
from certisure.api.routes.templates import router as templates_router
from certisure.api.routes.verify import router as verify_router
from certisure.api.routes.team import router as team_router
from certisure.api.routes.users import router as users_router
from certisure.core.config import settings
from certisure.core.errors import CertisureError, InternalError
from certisure.core.tenancy import TenantContextMissingError

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"

app = FastAPI(title="Certisure")
app.include_router(certificates_router, prefix="/api/v1")
app.include_router(templates_router, prefix="/api/v1")
app.include_router(email_templates_router, prefix="/api/v1")
app.include_router(organizations_router, prefix="/api/v1")
app.include_router(plans_router, prefix="/api/v1")
app.include_router(billing_router, prefix="/api/v1")
app.include_router(audit_logs_router, prefix="/api/v1")
app.include_router(verify_router, prefix="/api/v1")
app.include_router(team_router, prefix="/api/v1")
app.include_router(users_router, prefix="/api/v1")


@app.exception_handler(CertisureError)
async def certisure_error_handler(request: Request, exc: CertisureError) -> JSONResponse:
    if isinstance(exc, InternalError):
        logger.error("Internal error path=%s: %s", request.url.path, exc.message)
        if settings.is_production:
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": GENERIC_ERROR_MESSAGE, "code": exc.code},
            )
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.payload()))


@app.exception_handler(TenantContextMissingError)
async def tenant_context_error_handler(request: Request, exc: TenantContextMissingError) -> JSONResponse:
    return JSONResponse(status_code=403, content={"detail": str(exc), "code": "forbidden"})


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    return {"status": "ok"}
