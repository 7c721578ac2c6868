from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from driver_identity.api import v1
from driver_identity.logging_setup import configure_logging

logger = configure_logging()

app = FastAPI(
    title="Fleet Driver Identity",
    description="Correlation of telemetry driver names with the driver roster",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(v1.router, prefix="/api/v1")
