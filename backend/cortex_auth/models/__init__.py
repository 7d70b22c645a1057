from cortex_auth.models.refresh_token import RefreshToken
from cortex_auth.models.user import User

__all__ = [
    "RefreshToken",
    "User",
]
