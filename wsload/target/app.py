"""
Reference streaming target.

A small FastAPI server speaking the same subscribe protocol the load
generator uses: it pushes one tick per topic every `tick_interval` seconds
to every subscriber. Useful for local runs and for the end-to-end tests.

Run with:
    wsload-target --port 8080 --tick-interval 1
"""

import argparse
import logging
import time
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import FastAPI, WebSocket
from pydantic import BaseModel

from .handler import WebSocketHandler
from .hub import TopicHub

logger = logging.getLogger(__name__)


class TopicStats(BaseModel):
    message_count: int
    subscriber_count: int


class StatsResponse(BaseModel):
    topics: Dict[str, TopicStats]


class HealthResponse(BaseModel):
    status: str = "healthy"
    uptime_seconds: float
    topic_count: int
    active_subscriber_count: int


def create_app(tick_interval: float = 1.0, send_timeout_ms: int = 500) -> FastAPI:
    hub = TopicHub(tick_interval=tick_interval, send_timeout_ms=send_timeout_ms)
    ws_handler = WebSocketHandler(hub)
    start_time = time.monotonic()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Target starting up (tick interval {tick_interval:g}s)")
        yield
        logger.info("Target shutting down")
        await hub.shutdown()

    app = FastAPI(
        title="wsload reference target",
        description="Streaming WebSocket target that ticks every subscribed topic",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.hub = hub

    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        return HealthResponse(
            status="healthy",
            uptime_seconds=time.monotonic() - start_time,
            topic_count=len(hub.list_topics()),
            active_subscriber_count=hub.get_total_subscriber_count(),
        )

    @app.get("/stats", response_model=StatsResponse)
    async def get_stats() -> StatsResponse:
        return StatsResponse(
            topics={name: TopicStats(**stats) for name, stats in hub.get_stats().items()}
        )

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await ws_handler.handle_connection(websocket)

    return app


def main(argv: Optional[List[str]] = None) -> None:
    import uvicorn

    parser = argparse.ArgumentParser(prog="wsload-target", description="Reference streaming target")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument("--tick-interval", type=float, default=1.0, help="Seconds between ticks")
    parser.add_argument("--log-level", default="info")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    uvicorn.run(
        create_app(tick_interval=args.tick_interval),
        host=args.host,
        port=args.port,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
