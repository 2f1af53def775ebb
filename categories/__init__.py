from .views import categories_bp

__all__ = ["categories_bp"]
