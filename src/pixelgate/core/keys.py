import secrets

PUBLIC_KEY_PREFIX = "pk_"
SECRET_KEY_PREFIX = "sk_"
KEY_PREFIX_LEN = 12


def generate_key_pair() -> tuple[str, str]:
    # 16 bytes -> 22 url-safe chars, 32 bytes -> 43
    public_key = PUBLIC_KEY_PREFIX + secrets.token_urlsafe(16)
    secret_key = SECRET_KEY_PREFIX + secrets.token_urlsafe(32)
    return public_key, secret_key


def key_prefix(public_key: str) -> str:
    return public_key[:KEY_PREFIX_LEN]
