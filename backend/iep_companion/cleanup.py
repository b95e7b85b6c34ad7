from __future__ import annotations
from datetime import datetime, timedelta
from sqlalchemy import delete
from sqlalchemy.orm import Session

from .models import AuthSession
from .settings import settings
from .state import AppStateStore


def purge_stale_sessions(db: Session, states: AppStateStore, *, days: int | None = None) -> int:
	threshold = datetime.utcnow() - timedelta(days=days if days is not None else settings.session_retention_days)
	# Drop the in-memory state of every revoked or idle session along with its row
	stale_ids = [row.session_id for row in db.query(AuthSession).filter(AuthSession.last_activity_at < threshold).all()]
	for session_id in stale_ids:
		states.drop(session_id)
	removed = 0
	if stale_ids:
		res = db.execute(delete(AuthSession).where(AuthSession.session_id.in_(stale_ids)))
		removed += res.rowcount or 0
	db.commit()
	removed += states.purge_idle(threshold)
	return removed
