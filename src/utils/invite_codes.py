"""Invite code generation."""

import secrets

from config import INVITE_CODE_ALPHABET, INVITE_CODE_LENGTH


def generate_invite_code(length: int = INVITE_CODE_LENGTH) -> str:
    """Generate a random invite code without visually ambiguous characters."""
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


def is_valid_invite_code(code: str) -> bool:
    return (
        isinstance(code, str)
        and len(code) == INVITE_CODE_LENGTH
        and all(ch in INVITE_CODE_ALPHABET for ch in code)
    )
