from certisure.core.repositories.base import TenantRepository
from certisure.core.repositories.certificate_templates import CertificateTemplateRepository
from certisure.core.repositories.certificates import CertificateRepository
from certisure.core.repositories.email_templates import EmailTemplateRepository
from certisure.core.repositories.organizations import OrganizationRepository
from certisure.core.repositories.users import UserRepository
from certisure.core.tenancy import TenantContextMissingError

__all__ = [
    "TenantContextMissingError",
    "TenantRepository",
    "CertificateRepository",
    "CertificateTemplateRepository",
    "EmailTemplateRepository",
    "OrganizationRepository",
    "UserRepository",
]
