from certisure.models.audit_log import AuditLog
from certisure.models.base import Base, EntityBase, TenantScopedBase
from certisure.models.certificate import Certificate
from certisure.models.certificate_template import CertificateTemplate
from certisure.models.email_template import EmailTemplate
from certisure.models.organization import Organization
from certisure.models.plan import Plan
from certisure.models.user import User

__all__ = [
    "Base",
    "EntityBase",
    "TenantScopedBase",
    "AuditLog",
    "Certificate",
    "CertificateTemplate",
    "EmailTemplate",
    "Organization",
    "Plan",
    "User",
]
