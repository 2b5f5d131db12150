from fastapi import APIRouter, HTTPException
from google.genai import types
from loguru import logger

from gifstudio.agents.advisor import suggest_targets
from gifstudio.agents.gemini import image_part, split_data_url
from gifstudio.agents.style_analyzer import extract_style
from gifstudio.errors import SessionBusyError
from gifstudio.models.request import SuggestionRequest, UploadRequest
from gifstudio.models.response import SessionInfo, Suggestions
from gifstudio.sessions import ImageSession, sessions

router = APIRouter()


def get_session_or_404(session_id: str) -> ImageSession:
    session = sessions.get(session_id)
    if session is None:
        logger.warning("Unknown session requested: {sid}", sid=session_id)
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return session


def prepare_image(image: str) -> types.Part:
    """Validate an uploaded data URL and build the part sent to Gemini."""
    try:
        mime_type, _ = split_data_url(image)
        if not mime_type.startswith("image/"):
            raise ValueError(f"Unsupported content type: {mime_type}")
        return image_part(image)
    except (ValueError, OSError) as e:
        logger.warning("Rejected upload: {error}", error=e)
        raise HTTPException(status_code=400, detail="Please upload an image file") from e


def _ensure_idle(session: ImageSession) -> None:
    if session.generating:
        raise HTTPException(status_code=409, detail="A generation is already running for this image")


@router.post("/api/sessions", response_model=SessionInfo)
async def create_session(request: UploadRequest) -> SessionInfo:
    """Start a session for a newly uploaded image and analyse its style."""
    part = prepare_image(request.image)
    profile = await extract_style(part)
    if profile is None:
        logger.warning("No style profile available; prompts will carry no style constraints")
    return sessions.create(request.image, profile).info()


@router.get("/api/sessions/{session_id}", response_model=SessionInfo)
async def get_session(session_id: str) -> SessionInfo:
    return get_session_or_404(session_id).info()


@router.delete("/api/sessions/{session_id}")
async def delete_session(session_id: str) -> dict:
    session = get_session_or_404(session_id)
    _ensure_idle(session)
    sessions.delete(session_id)
    return {"deleted": session_id}


@router.put("/api/sessions/{session_id}/image", response_model=SessionInfo)
async def replace_image(session_id: str, request: UploadRequest) -> SessionInfo:
    """Upload a new image into an existing session, resetting its profile and frames."""
    session = get_session_or_404(session_id)
    _ensure_idle(session)
    part = prepare_image(request.image)
    profile = await extract_style(part)
    try:
        sessions.replace_image(session, request.image, profile)
    except SessionBusyError as e:
        raise HTTPException(status_code=409, detail="A generation is already running for this image") from e
    return session.info()


@router.post("/api/sessions/{session_id}/suggestions", response_model=Suggestions)
async def get_suggestions(session_id: str, request: SuggestionRequest) -> Suggestions:
    session = get_session_or_404(session_id)
    logger.info("Suggestion request: session={sid}, mode={mode}", sid=session_id, mode=request.mode)
    return await suggest_targets(image_part(session.image), request.mode)
