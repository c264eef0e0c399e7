from .factory import get_adapter, resolve_step

__all__ = ['get_adapter', 'resolve_step']
