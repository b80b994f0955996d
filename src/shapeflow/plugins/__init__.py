from .registry import Registry, RegisteredComponent, global_registry

__all__ = ["Registry", "RegisteredComponent", "global_registry"]
