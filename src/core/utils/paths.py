"""Deterministic object paths for avatar variants."""

from core.utils.constants import AVATAR_KEY_PREFIX


def build_variant_path(*, user_id: str, session_id: str, kind: str, extension: str) -> str:
    """Return `avatars/{user_id}/{session_id}/{kind}.{ext}`."""
    return f"{AVATAR_KEY_PREFIX}/{user_id}/{session_id}/{kind}.{extension}"


def user_prefix(user_id: str) -> str:
    """Prefix under which every object of a user lives."""
    return f"{AVATAR_KEY_PREFIX}/{user_id}/"


def session_prefix(user_id: str, session_id: str) -> str:
    """Prefix of the objects written by one session, used for orphan sweeps."""
    return f"{AVATAR_KEY_PREFIX}/{user_id}/{session_id}/"
