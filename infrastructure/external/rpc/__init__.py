from .login_client import LoginClient

__all__ = ["LoginClient"]
