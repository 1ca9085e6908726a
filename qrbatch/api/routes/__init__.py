from . import jobs, worker

__all__ = ["jobs", "worker"]
