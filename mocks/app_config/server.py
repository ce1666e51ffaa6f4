"""
Mock configuration service serving feature flag snapshots.
"""

from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from shared.logging import get_logger


class FlagItem(BaseModel):
    name: str
    label: Optional[str] = None
    enabled: bool


class FlagUpdate(BaseModel):
    enabled: bool


class MockAppConfigServer:
    """Mock configuration service implementation.

    Flags are stored as labelled items the way the real service keeps them;
    ``GET /feature-flags`` returns the unlabelled items plus those carrying
    the requested label. ``POST /admin/outage`` makes every snapshot request
    fail with 503 until it is cleared.
    """

    def __init__(self, port: int = 8090, items: Optional[List[FlagItem]] = None):
        self.port = port
        self.logger = get_logger("mock.app_config")
        self.app = FastAPI(title="Mock App Config", version="1.0.0")

        self.items: Dict[tuple, FlagItem] = {}
        for item in items if items is not None else self._default_items():
            self.items[(item.name, item.label)] = item
        self.outage = False

        self._setup_routes()

    @staticmethod
    def _default_items() -> List[FlagItem]:
        return [
            FlagItem(name="WeatherForecast", enabled=True),
            FlagItem(name="DetailedHealth", enabled=False),
            FlagItem(name="DetailedHealth", label="development", enabled=True),
        ]

    def _setup_routes(self):
        """Set up mock configuration routes."""

        @self.app.get("/")
        async def root():
            return {
                "service": "Mock App Config",
                "version": "1.0.0",
                "flags": len(self.items)
            }

        @self.app.get("/feature-flags")
        async def list_feature_flags(label: Optional[str] = Query(None)):
            if self.outage:
                raise HTTPException(status_code=503, detail="Configuration store unavailable")

            selected = [
                item.model_dump() for item in self.items.values()
                if item.label is None or item.label == label
            ]
            self.logger.info("Served feature flag snapshot", label=label, flags=len(selected))
            return {"items": selected}

        @self.app.put("/feature-flags/{name}")
        async def set_feature_flag(name: str, update: FlagUpdate, label: Optional[str] = Query(None)):
            item = FlagItem(name=name, label=label, enabled=update.enabled)
            self.items[(name, label)] = item
            self.logger.info("Feature flag updated", flag=name, label=label, enabled=update.enabled)
            return item.model_dump()

        @self.app.delete("/feature-flags/{name}")
        async def delete_feature_flag(name: str, label: Optional[str] = Query(None)):
            if self.items.pop((name, label), None) is None:
                raise HTTPException(status_code=404, detail="Feature flag not found")
            return {"deleted": name, "label": label}

        @self.app.post("/admin/outage")
        async def set_outage(enabled: bool = Query(True)):
            self.outage = enabled
            return {"outage": self.outage}

        @self.app.get("/health")
        async def health():
            return {"status": "ok" if not self.outage else "degraded"}


def create_app():
    """Create mock configuration service application."""
    server = MockAppConfigServer()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8090)
