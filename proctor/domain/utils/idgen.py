import secrets

SESSION_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
SESSION_CODE_LENGTH = 6
OPAQUE_ID_BYTES = 8


def new_session_code() -> str:
    """Short, human-shareable code. Callers must check it against existing codes."""
    raw = secrets.token_bytes(SESSION_CODE_LENGTH)
    return "".join(SESSION_CODE_ALPHABET[b % len(SESSION_CODE_ALPHABET)] for b in raw)


def new_opaque_id() -> str:
    return secrets.token_hex(OPAQUE_ID_BYTES)