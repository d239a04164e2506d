# This project was developed with assistance from AI tools.
"""Authentication and authorization schemas."""

from db.enums import UserRole
from pydantic import BaseModel, ConfigDict, Field


class DataScope(BaseModel):
    """Data visibility rules injected by RBAC middleware."""

    own_data_only: bool = False
    user_id: str | None = None
    full_access: bool = False


class UserContext(BaseModel):
    """Injected by auth middleware into every authenticated request.

    ``approval_level`` is the chain level the actor normally acts at, when
    the identity provider supplies one. ``permissions`` gate which chain
    stages (review / approve / complete) the actor may act on.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    role: UserRole
    email: str
    name: str
    approval_level: int | None = None
    permissions: frozenset[str] = Field(default_factory=frozenset)
    data_scope: DataScope = Field(default_factory=DataScope)


class TokenPayload(BaseModel):
    """Decoded JWT token claims from Keycloak."""

    sub: str
    email: str = ""
    preferred_username: str = ""
    name: str = ""
    realm_access: dict = Field(default_factory=dict)
    approval_level: int | None = None
    permissions: list[str] | None = None
