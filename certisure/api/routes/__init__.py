from certisure.api.routes.audit_logs import router as audit_logs_router
from certisure.api.routes.billing import router as billing_router
from certisure.api.routes.certificates import router as certificates_router
from certisure.api.routes.email_templates import router as email_templates_router
from certisure.api.routes.organizations import router as organizations_router
from certisure.api.routes.plans import router as plans_router
from certisure.api.routes.templates import router as templates_router
from certisure.api.routes.team import router as team_router
from certisure.api.routes.users import router as users_router
from certisure.api.routes.verify import router as verify_router

__all__ = [
    "audit_logs_router",
    "billing_router",
    "certificates_router",
    "email_templates_router",
    "organizations_router",
    "plans_router",
    "templates_router",
    "verify_router",
    "team_router",
    "users_router",
]
