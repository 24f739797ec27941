from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings


CSRF_HEADER = "X-CSRF-Token"
TOKEN_MAX_AGE_SECS = 2 * 3600


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.csrf_secret, salt="budget-api-csrf")


def generate_csrf_token(user_id: int = 1) -> str:
    return _serializer().dumps({"u": user_id})


def validate_csrf_token(
    token: str, user_id: int = 1, max_age_secs: int = TOKEN_MAX_AGE_SECS
) -> bool:
    if not token:
        return False
    try:
        data = _serializer().loads(token, max_age=max_age_secs)
    except BadSignature:
        return False
    return isinstance(data, dict) and data.get("u") == user_id
