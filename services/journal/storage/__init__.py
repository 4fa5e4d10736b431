from .backend_link import BackendLink, LinkState, redis_client_factory

__all__ = ["BackendLink", "LinkState", "redis_client_factory"]
