"""
Request-level protections shared by the blueprints.

`csrf` guards cookie-authenticated writes; `limiter` throttles PIN guessing.
Both are bound to the app in create_app and switched by config
(WTF_CSRF_ENABLED, RATELIMIT_ENABLED).
"""
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_wtf.csrf import CSRFProtect

LOGIN_RATE_LIMIT = "10 per minute"

csrf = CSRFProtect()

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["2000 per day", "300 per hour"],
    storage_uri="memory://",
    strategy="fixed-window",
)
