# This project was developed with assistance from AI tools.
"""Pure auth utility functions with no FastAPI or HTTP dependencies.

Shared by the middleware layer (HTTP request auth) and the services that
authorize approval actions, so neither pulls Starlette into the other.
"""

from db.enums import UserRole

from ..schemas.auth import DataScope

# -- Permission names --
REVIEW_REQUESTS = "requests:review"
APPROVE_REQUESTS = "requests:approve"
COMPLETE_REQUESTS = "requests:complete"
CREATE_REQUESTS = "requests:create"
POST_LEDGER = "ledger:post"
RECORD_REPAYMENTS = "loans:repay"

ROLE_PERMISSIONS: dict[UserRole, frozenset[str]] = {
    UserRole.SUPER_ADMIN: frozenset(
        {
            REVIEW_REQUESTS,
            APPROVE_REQUESTS,
            COMPLETE_REQUESTS,
            CREATE_REQUESTS,
            POST_LEDGER,
            RECORD_REPAYMENTS,
        }
    ),
    UserRole.ADMIN: frozenset({REVIEW_REQUESTS, CREATE_REQUESTS, POST_LEDGER}),
    UserRole.TREASURER: frozenset(
        {REVIEW_REQUESTS, COMPLETE_REQUESTS, CREATE_REQUESTS, POST_LEDGER, RECORD_REPAYMENTS}
    ),
    UserRole.CHAIRMAN: frozenset({REVIEW_REQUESTS, APPROVE_REQUESTS, CREATE_REQUESTS}),
    UserRole.MEMBER: frozenset({CREATE_REQUESTS}),
}


def default_permissions(role: UserRole) -> frozenset[str]:
    """Permissions granted to a role when the token carries none."""
    return ROLE_PERMISSIONS.get(role, frozenset())


def build_data_scope(role: UserRole, user_id: str) -> DataScope:
    """Build data scope rules based on the user's role."""
    if role == UserRole.MEMBER:
        return DataScope(own_data_only=True, user_id=user_id)
    return DataScope(full_access=True)
