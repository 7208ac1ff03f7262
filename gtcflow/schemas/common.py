from enum import Enum

class Role(str, Enum):
    ADMIN = "ADMIN"
    SECTOR_OWNER = "SECTOR_OWNER"
    GTC_POINT = "GTC_POINT"
    EXTERNAL = "EXTERNAL"


class ConventionStatus(str, Enum):
    NEW = "NEW"
    UPLOADED = "UPLOADED"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"


class ConventionAction(str, Enum):
    UPLOAD = "UPLOAD"
    APPROVE = "APPROVE"
    DECLINE = "DECLINE"
    DELETE = "DELETE"


class OnboardingStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"
    COMPLETED = "COMPLETED"


class OnboardingAction(str, Enum):
    SUBMIT = "SUBMIT"
    APPROVE = "APPROVE"
    DECLINE = "DECLINE"
    COMPLETE = "COMPLETE"


class PointServiceStatus(str, Enum):
    ENABLED = "ENABLED"
    DISABLED = "DISABLED"
    PENDING_REQUEST = "PENDING_REQUEST"


class DocumentKind(str, Enum):
    SIGNED = "SIGNED"


class NotificationType(str, Enum):
    CONVENTION_CREATED = "CONVENTION_CREATED"
    CONVENTION_UPLOADED = "CONVENTION_UPLOADED"
    CONVENTION_STATUS = "CONVENTION_STATUS"
    ONBOARDING_SUBMITTED = "ONBOARDING_SUBMITTED"
    ONBOARDING_STATUS = "ONBOARDING_STATUS"
    SERVICE_REQUEST = "SERVICE_REQUEST"
    SERVICE_STATUS = "SERVICE_STATUS"
    WELCOME = "WELCOME"
    GENERIC = "GENERIC"

