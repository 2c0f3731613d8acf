# backend/app/credentials.py

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CredentialKind(str, Enum):
    USER = "user"
    SERVICE = "service"
    STATIC_KEY = "static_key"


@dataclass(frozen=True)
class Credential:
    kind: CredentialKind
    token: str

    @property
    def is_user(self) -> bool:
        return self.kind is CredentialKind.USER

    def __repr__(self) -> str:
        # never leak the token into logs
        return f"Credential(kind={self.kind.value})"


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


class CredentialResolver:
    """
    Ordered fallback: caller's bearer token, then the service role key,
    then the static access key. The first one available wins.
    """

    def __init__(self, service_role_key: Optional[str], access_api_key: str):
        self.service_role_key = service_role_key
        self.access_api_key = access_api_key

    @property
    def has_service_key(self) -> bool:
        return bool(self.service_role_key)

    def resolve(self, authorization: Optional[str]) -> Credential:
        user_token = bearer_token(authorization)
        if user_token:
            return Credential(CredentialKind.USER, user_token)
        if self.service_role_key:
            return Credential(CredentialKind.SERVICE, self.service_role_key)
        return Credential(CredentialKind.STATIC_KEY, self.access_api_key)
