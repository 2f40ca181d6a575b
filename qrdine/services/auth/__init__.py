"""
Identity & Role Gate

Usage:
    from qrdine.services.auth import IdentityGate, CredentialStore

    gate = IdentityGate(CredentialStore(session))
    identity = await gate.authenticate(request.headers.get("Authorization"))
    gate.require(identity, ["cashier", "admin"])
"""

from qrdine.services.auth.gate import IdentityGate
from qrdine.services.auth.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    hash_password_async,
    verify_password,
)
from qrdine.services.auth.store import CredentialStore, Identity

__all__ = [
    "IdentityGate",
    "CredentialStore",
    "Identity",
    "create_access_token",
    "decode_access_token",
    "hash_password",
    "hash_password_async",
    "verify_password",
]
