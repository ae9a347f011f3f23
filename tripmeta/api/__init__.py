"""HTTP surface (FastAPI) over the orchestrator."""

from tripmeta.api.main import create_app

__all__ = ["create_app"]
