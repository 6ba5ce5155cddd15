from app.models.audit_log import AuditLog
from app.models.professional_document import ProfessionalDocument
from app.models.professional_profile import ProfessionalProfile
from app.models.rating import Rating
from app.models.service_request import ServiceRequest
from app.models.user import User

__all__ = [
    "AuditLog",
    "User",
    "ProfessionalProfile",
    "ProfessionalDocument",
    "ServiceRequest",
    "Rating",
]
