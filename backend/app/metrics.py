"""Business counters for FundiPluss, exported on /metrics next to the HTTP metrics."""

from prometheus_client import Counter

# Service request lifecycle
REQUESTS_CREATED = Counter(
    "fundipluss_requests_created_total",
    "Total service requests created",
)
REQUEST_TRANSITIONS = Counter(
    "fundipluss_request_transitions_total",
    "Service request status transitions",
    ["to_status"],
)
REQUEST_TRANSITION_CONFLICTS = Counter(
    "fundipluss_request_transition_conflicts_total",
    "Transitions rejected because the request was not in the expected status",
    ["to_status"],
)

# Ratings
RATINGS_SUBMITTED = Counter(
    "fundipluss_ratings_submitted_total",
    "Total ratings submitted",
    ["score"],
)

# Accounts
USERS_REGISTERED = Counter(
    "fundipluss_users_registered_total",
    "Total users registered",
)
PROFESSIONAL_REVIEWS = Counter(
    "fundipluss_professional_reviews_total",
    "Admin decisions on professional registrations",
    ["decision"],
)
