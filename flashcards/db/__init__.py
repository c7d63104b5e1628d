from .store import SessionRecord, SessionStore, StoreError

__all__ = ["SessionRecord", "SessionStore", "StoreError"]
