"""Actor claims carried by bearer tokens."""

import enum
from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class UserScope(str, enum.Enum):
    """Token scopes understood by the workflow."""

    DECLARE = "declare"
    VALIDATE = "validate"
    REGISTER = "register"
    CERTIFY = "certify"
    RECORD_SEARCH = "recordsearch"
    NOTIFICATION_API = "notification-api"
    VALIDATOR_API = "validator-api"
    SYSADMIN = "sysadmin"


# Scopes held by integrated system clients (registered through getSystem) rather than users
SYSTEM_CLIENT_SCOPES: frozenset[str] = frozenset(
    {
        UserScope.RECORD_SEARCH.value,
        UserScope.NOTIFICATION_API.value,
        UserScope.VALIDATOR_API.value,
    }
)


class TokenClaims(BaseModel):
    """Decoded payload of an actor token."""

    sub: str
    scope: list[str] = Field(default_factory=list)
    exp: datetime | None = None
    iss: str | None = None
    aud: list[str] | str | None = None

    @field_validator("scope", mode="before")
    @classmethod
    def split_scope_string(cls, value: object) -> object:
        """Accept the space-separated OAuth2 form as well as a list."""
        if isinstance(value, str):
            return value.split()
        if value is None:
            return []
        return value

    def has_scope(self, scope: UserScope | str) -> bool:
        value = scope.value if isinstance(scope, UserScope) else scope
        return value in self.scope

    @property
    def is_system_client(self) -> bool:
        return not SYSTEM_CLIENT_SCOPES.isdisjoint(self.scope)
