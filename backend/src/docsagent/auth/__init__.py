"""Authentication module for the Docs Agent"""

from .credential_store import CredentialStore
from .credentials import UserCredential
from .lifecycle import AuthorizedSession, CredentialLifecycleManager
from .oauth import GOOGLE_SCOPES, GoogleOAuthClient

__all__ = [
    "AuthorizedSession",
    "CredentialLifecycleManager",
    "CredentialStore",
    "GOOGLE_SCOPES",
    "GoogleOAuthClient",
    "UserCredential",
]
