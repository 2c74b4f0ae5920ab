from .config import RoleEngineConfig, load_config
from .session_store import InMemorySessionStore

__all__ = ["RoleEngineConfig", "load_config", "InMemorySessionStore"]
