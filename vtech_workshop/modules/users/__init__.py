from .admin import UserAdmin
from .authz import CAPABILITIES, Authorizer
from .identity import CurrentUser, IdentityProvider, LocalIdentityProvider

__all__ = [
    "UserAdmin",
    "CAPABILITIES",
    "Authorizer",
    "CurrentUser",
    "IdentityProvider",
    "LocalIdentityProvider",
]
