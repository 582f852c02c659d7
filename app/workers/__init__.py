from app.workers.hub_runner import HubRunner

__all__ = ["HubRunner"]
