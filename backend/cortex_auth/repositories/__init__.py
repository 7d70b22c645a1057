from cortex_auth.repositories.refresh_token import RefreshTokenRepository
from cortex_auth.repositories.user import UserRepository

__all__ = [
    "RefreshTokenRepository",
    "UserRepository",
]
