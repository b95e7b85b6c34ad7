from __future__ import annotations
from datetime import datetime
from sqlalchemy import Boolean, Column, String, DateTime, Text
from .db import Base


class AuthUser(Base):
	__tablename__ = "auth_users"
	# Primary key is the sign-in email
	email = Column(String(256), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	full_name = Column(String(256), nullable=False)
	role = Column(String(32), nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	# JWT "jti"; one row per signed-in device session
	session_id = Column(String(64), primary_key=True)
	username = Column(String(256), nullable=False, index=True)
	demo = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UserPreferences(Base):
	__tablename__ = "user_preferences"
	username = Column(String(256), primary_key=True)
	language = Column(String(8), default="en", nullable=False)
	auto_detect_language = Column(Boolean, default=True, nullable=False)
	tts_settings_json = Column(Text, nullable=True)  # JSON snapshot of TTSSettings
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
