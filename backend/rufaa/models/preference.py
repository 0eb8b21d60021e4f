"""Runtime-editable client preferences (base URL, auth token), read on every remote call."""
from typing import Optional
from sqlalchemy import Column, String, Text
from sqlalchemy.orm import sessionmaker
from .base import Base, TimestampMixin


class PreferenceKey:
    BASE_URL = "base_url"
    AUTH_TOKEN = "auth_token"


class Preference(Base, TimestampMixin):
    __tablename__ = "preferences"

    key = Column(String(50), primary_key=True)
    value = Column(Text, nullable=True)


class PreferenceRepository:
    """Key/value access to the ``preferences`` table."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        with self._session_factory() as db:
            pref = db.get(Preference, key)
            return pref.value if pref else None

    def set(self, key: str, value: Optional[str]) -> None:
        with self._session_factory() as db:
            pref = db.get(Preference, key)
            if pref is None:
                db.add(Preference(key=key, value=value))
            else:
                pref.value = value
            db.commit()

    def get_base_url(self, default: str) -> str:
        return self.get(PreferenceKey.BASE_URL) or default

    def get_auth_token(self) -> Optional[str]:
        return self.get(PreferenceKey.AUTH_TOKEN)
