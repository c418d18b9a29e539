from .store import jobs, watchers

__all__ = ["jobs", "watchers"]
