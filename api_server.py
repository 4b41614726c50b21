from __future__ import annotations  # FastAPI server exposing the interview session

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import routes
from config.settings import settings
from services.remote import bind_from_file


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):  # Bind remote collaborators, tear down timers on exit
    bind_from_file(Path(settings.APP_CONFIG_PATH))
    runtime = routes.get_runtime()
    try:
        yield
    finally:
        runtime.shutdown()


app = FastAPI(title="Mock Interview API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"]
)
app.include_router(routes.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000)
