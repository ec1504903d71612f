# Persistence for tagged messages
from app.db.session import Base, init_db, get_engine, get_session_factory
from app.db.models import TaggedMessage, MessageTag

__all__ = ["Base", "init_db", "get_engine", "get_session_factory", "TaggedMessage", "MessageTag"]
