import base64
import binascii
import json

AUTH_CLAIM = "https://api.openai.com/auth"
ACCOUNT_ID_CLAIM = "chatgpt_account_id"


def decode_jwt_payload(token: str) -> dict[str, object]:
    """Decode the claims segment of a JWT without verifying it."""
    parts = token.split(".", 2)
    if len(parts) < 2:
        return {}
    segment = parts[1]
    padding = -len(segment) % 4
    try:
        raw = base64.urlsafe_b64decode(segment + "=" * padding)
        parsed = json.loads(raw)
    except (binascii.Error, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def extract_account_id(token: str) -> str:
    """Return the account-identity claim the session backend requires, or ""."""
    auth = decode_jwt_payload(token).get(AUTH_CLAIM)
    if not isinstance(auth, dict):
        return ""
    account_id = auth.get(ACCOUNT_ID_CLAIM)
    return account_id.strip() if isinstance(account_id, str) else ""
