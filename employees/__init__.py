from .views import employees_bp

__all__ = ["employees_bp"]
