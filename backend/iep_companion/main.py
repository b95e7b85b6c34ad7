import asyncio
import logging

from fastapi import FastAPI

from .db import Base, engine, get_db
from .cleanup import purge_stale_sessions
from .settings import settings
from .state import app_states
from .routers import auth
from .routers import chat
from .routers import documents
from .routers import language
from .routers import session
from .routers import speech
from .routers import upload

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title="IEP Companion API")
app.include_router(auth.router)
app.include_router(session.router)
app.include_router(upload.router)
app.include_router(documents.router)
app.include_router(chat.router)
app.include_router(language.router)
app.include_router(speech.router)


@app.get("/info")
def root():
	return {"status": "ok", "openai_configured": bool(settings.openai_api_key)}


def _purge_once():
	db = next(get_db())
	try:
		removed = purge_stale_sessions(db, app_states)
		if removed:
			logger.info("Purged %d stale sessions", removed)
	finally:
		db.close()


_cleanup_task = None


async def _cleanup_watcher():
	# Hourly after the startup pass
	while True:
		await asyncio.sleep(60 * 60)
		try:
			_purge_once()
		except Exception:
			logger.exception("Session cleanup failed")


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	try:
		_purge_once()
	except Exception:
		logger.exception("Session cleanup failed")
	global _cleanup_task
	_cleanup_task = asyncio.create_task(_cleanup_watcher())


@app.on_event("shutdown")
async def shutdown_event():
	if _cleanup_task is not None:
		_cleanup_task.cancel()
