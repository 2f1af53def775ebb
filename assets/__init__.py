from .views import assets_bp

__all__ = ["assets_bp"]
