"""FastAPI application entry point."""

from ddtrace import patch_all
from fastapi import FastAPI

from medscribe.logging import setup_logging

from .routes import recordings_router

setup_logging()
patch_all()

app = FastAPI(title="Medical Consultation Recording API")
app.include_router(recordings_router)
