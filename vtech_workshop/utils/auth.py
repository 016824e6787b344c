# vtech_workshop/utils/auth.py
from __future__ import annotations

import secrets
from typing import Callable, Optional, Tuple, Union

import bcrypt

# ---- bcrypt defaults / policy ----
_BCRYPT_DEFAULT_ROUNDS = 12          # used when hashing
_BCRYPT_MIN_ACCEPTABLE_ROUNDS = 12   # rehash if lower than this
_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


# ---------------------------- bcrypt helpers ----------------------------

def _is_bcrypt(hash_str: str) -> bool:
    return hash_str.startswith(_BCRYPT_PREFIXES)


def _parse_bcrypt_cost(hash_str: str) -> int | None:
    """
    Extract the cost from a bcrypt hash: $2b$12$...
    Returns None if not parseable.
    """
    parts = hash_str.split("$")
    # ['', '2b', '12', 'rest...']
    if len(parts) < 4:
        return None
    try:
        return int(parts[2])
    except ValueError:
        return None


def _as_text(stored_hash: Union[str, bytes, None]) -> str:
    if stored_hash is None:
        return ""
    if isinstance(stored_hash, bytes):
        try:
            stored_hash = stored_hash.decode("utf-8")
        except UnicodeDecodeError:
            return ""
    return stored_hash.strip()


# ------------------------------- Public API -------------------------------

def hash_password(password: str, *, rounds: int = _BCRYPT_DEFAULT_ROUNDS) -> str:
    """
    Hash `password` with bcrypt. `rounds` is clamped to a minimum of
    _BCRYPT_MIN_ACCEPTABLE_ROUNDS.
    """
    if password is None:
        raise ValueError("Password cannot be None")
    if not isinstance(password, str) or password == "":
        raise ValueError("Password must be a non-empty string")
    rounds = max(int(rounds), _BCRYPT_MIN_ACCEPTABLE_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def verify_password(password: str, stored_hash: Union[str, bytes, None]) -> bool:
    """Verify `password` against a bcrypt `stored_hash` ($2a$ / $2b$ / $2y$)."""
    if password is None:
        return False
    h = _as_text(stored_hash)
    if not h or not _is_bcrypt(h):
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), h.encode("utf-8"))
    except ValueError:
        # malformed salt
        return False


def needs_rehash(stored_hash: Union[str, bytes, None], *, min_rounds: int = _BCRYPT_MIN_ACCEPTABLE_ROUNDS) -> bool:
    """
    Policy hook: True if the stored hash is malformed, not bcrypt, or its cost
    is below `min_rounds`.
    """
    h = _as_text(stored_hash)
    if not h or not _is_bcrypt(h):
        return True
    cost = _parse_bcrypt_cost(h)
    return cost is None or cost < min_rounds


def verify_and_maybe_upgrade(
    password: str,
    stored_hash: Union[str, bytes, None],
    *,
    on_rehash: Optional[Callable[[str], None]] = None,
) -> Tuple[bool, Optional[str]]:
    """
    Verify the password and, if policy recommends, produce an upgraded hash.

    Returns (ok, new_hash_or_None). `on_rehash(new_hash)` is called when a new
    hash was produced so the caller can persist it.
    """
    if not verify_password(password, stored_hash):
        return False, None
    if not needs_rehash(stored_hash):
        return True, None
    new_hash = hash_password(password)
    if on_rehash is not None:
        on_rehash(new_hash)
    return True, new_hash


def new_session_token() -> str:
    """Opaque, URL-safe session identifier."""
    return secrets.token_urlsafe(32)
