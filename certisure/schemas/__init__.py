from certisure.schemas.audit import AuditLogResponse
from certisure.schemas.billing import EntitlementResponse, UsageResponse
from certisure.schemas.certificates import (
    BulkIssueRequest,
    BulkIssueResponse,
    CertificateAnalyticsResponse,
    CertificateIssueRequest,
    CertificateResponse,
)
from certisure.schemas.email_templates import (
    EmailTemplateDetailResponse,
    EmailTemplateSummaryResponse,
    EmailTemplateUpsertRequest,
)
from certisure.schemas.organizations import (
    OrganizationProfileRequest,
    OrganizationResponse,
    SubscriptionRestartRequest,
)
from certisure.schemas.plans import PlanAnalyticsResponse, PlanResponse, PlanUpdateRequest
from certisure.schemas.templates import TemplateDetailResponse, TemplateSummaryResponse, TemplateUpsertRequest
from certisure.schemas.users import (
    CurrentUserResponse,
    TeamMemberCreateRequest,
    TeamResponse,
    TeamSummary,
    UserResponse,
)
from certisure.schemas.verification import (
    DownloadRequest,
    DownloadResponse,
    FindCertificatesRequest,
    PublicCertificateResponse,
)

__all__ = [
    "AuditLogResponse",
    "EntitlementResponse",
    "UsageResponse",
    "BulkIssueRequest",
    "BulkIssueResponse",
    "CertificateAnalyticsResponse",
    "CertificateIssueRequest",
    "CertificateResponse",
    "EmailTemplateDetailResponse",
    "EmailTemplateSummaryResponse",
    "EmailTemplateUpsertRequest",
    "OrganizationProfileRequest",
    "OrganizationResponse",
    "SubscriptionRestartRequest",
    "PlanAnalyticsResponse",
    "PlanResponse",
    "PlanUpdateRequest",
    "TemplateDetailResponse",
    "TemplateSummaryResponse",
    "TemplateUpsertRequest",
    "CurrentUserResponse",
    "TeamMemberCreateRequest",
    "TeamResponse",
    "TeamSummary",
    "UserResponse",
    "DownloadRequest",
    "DownloadResponse",
    "FindCertificatesRequest",
    "PublicCertificateResponse",
]
