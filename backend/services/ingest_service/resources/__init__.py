from .cache import ResourceCache
from .manager import ResourceManager

__all__ = ["ResourceCache", "ResourceManager"]
