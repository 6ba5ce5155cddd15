import enum

# Enums are stored as VARCHAR columns, not native PG ENUM types, so adding a
# value never needs an ALTER TYPE migration.


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    PROFESSIONAL = "professional"
    ADMIN = "admin"


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DENIED = "denied"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ResponseDecision(str, enum.Enum):
    ACCEPT = "accept"
    DENY = "deny"
