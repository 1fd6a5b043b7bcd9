# app/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.logging_setup import configure_logging
from app.services import init_db
from app.api.routes import router as api_router


configure_logging()

app = FastAPI(title="Dormir Natural Funnel API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().app_origin],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)


@app.on_event("startup")
def on_startup() -> None:
    init_db()


@app.get("/")
def root():
    return {"message": "Dormir Natural funnel API is running"}


app.include_router(api_router, prefix="/api")
