from .views import exports_bp

__all__ = ["exports_bp"]
