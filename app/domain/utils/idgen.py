import secrets

SESSION_TOKEN_BYTES = 32
FINGERPRINT_NONCE_BYTES = 8


def new_session_token() -> str:
    """256-bit random session token, hex encoded."""
    return secrets.token_hex(SESSION_TOKEN_BYTES)


def new_fingerprint_nonce() -> str:
    return secrets.token_hex(FINGERPRINT_NONCE_BYTES)
