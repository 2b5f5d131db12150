import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from loguru import logger
from pydantic import BaseModel, Field

from gifstudio.errors import SessionBusyError
from gifstudio.models.response import GeneratedFrame, SessionInfo, StyleProfile


class ImageSession(BaseModel):
    """Everything tied to one uploaded image: its style profile and generated frames."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    image: str
    profile: StyleProfile | None = None
    frames: list[GeneratedFrame] = []
    generating: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def info(self) -> SessionInfo:
        return SessionInfo(
            id=self.id,
            created_at=self.created_at,
            profile=self.profile,
            frame_count=len(self.frames),
            generating=self.generating,
        )


class SessionStore:
    """In-memory session registry. Nothing survives a restart."""

    def __init__(self) -> None:
        self._sessions: dict[str, ImageSession] = {}

    def create(self, image: str, profile: StyleProfile | None) -> ImageSession:
        session = ImageSession(image=image, profile=profile)
        self._sessions[session.id] = session
        logger.info("Created session {sid}", sid=session.id)
        return session

    def get(self, session_id: str) -> ImageSession | None:
        return self._sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def replace_image(self, session: ImageSession, image: str, profile: StyleProfile | None) -> ImageSession:
        """Swap in a new image, discarding the old profile and frames wholesale."""
        if session.generating:
            raise SessionBusyError(f"Session {session.id} is generating")
        session.image = image
        session.profile = profile
        session.frames = []
        logger.info("Replaced image for session {sid}", sid=session.id)
        return session

    def acquire(self, session: ImageSession) -> str:
        """Mark ``session`` busy and return the source image the generation works from."""
        if session.generating:
            raise SessionBusyError(f"Session {session.id} is already generating")
        session.generating = True
        return session.image

    def release(self, session: ImageSession) -> None:
        session.generating = False

    @contextmanager
    def generation(self, session: ImageSession) -> Iterator[str]:
        """Hold ``session`` busy for one generation request; yields the source image."""
        source = self.acquire(session)
        try:
            yield source
        finally:
            self.release(session)

    def clear(self) -> None:
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)


sessions = SessionStore()
