import logging
import os

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from summary_service.endpoints.summaries.summary_endpoint import router as summaries_router
from summary_service.service.constants import LOG_LEVEL_ENV

logging.basicConfig(
    level=os.getenv(LOG_LEVEL_ENV, "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="Summary Service API",
    version="1.0.0rc0",
    description="Streaming quantile summaries exposed as Prometheus metrics",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(summaries_router, tags=["Summary Metrics"])


@app.get("/")
async def root():
    return {"message": "Welcome to the Summary Service"}


@app.get("/q/metrics")
async def metrics(request: Request):
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Readiness probe
@app.get("/q/health/ready")
async def readiness_probe():
    return JSONResponse(content={"status": "ready"}, status_code=200)


# Liveness probe endpoint
@app.get("/q/health/live")
async def liveness_probe():
    return JSONResponse(content={"status": "live"}, status_code=200)


if __name__ == "__main__":
    host = "0.0.0.0"
    http_port = int(os.getenv("HTTP_PORT", "8080"))

    logger.info(f"Starting Summary Service on port {http_port}")
    uvicorn.run(app=app, host=host, port=http_port)
