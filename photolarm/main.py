from fastapi import FastAPI

from photolarm.api.routes_patterns import router as patterns_router
from photolarm.api.routes_preferences import router as preferences_router
from photolarm.api.routes_schedules import router as schedules_router
from photolarm.core.config import PHOTOLARM_LOG_FILE, PHOTOLARM_LOG_LEVEL
from photolarm.core.logging import setup_logger

SERVICE_NAME = "Photolarm Reminder Engine"

setup_logger(PHOTOLARM_LOG_LEVEL, PHOTOLARM_LOG_FILE)

app = FastAPI(title=SERVICE_NAME, version="1.0")

app.include_router(schedules_router)
app.include_router(patterns_router)
app.include_router(preferences_router)


@app.get("/health")
def health():
    return {"ok": True, "service": SERVICE_NAME}


@app.get("/")
def index():
    return {
        "service": SERVICE_NAME,
        "routes": ["/schedules", "/patterns", "/preferences", "/health"],
    }
