import json

from fastapi import APIRouter, HTTPException
from fastapi.responses import Response, StreamingResponse
from loguru import logger

from gifstudio.agents.dispatcher import dispatch, iter_frames, original_frame, template_for
from gifstudio.agents.gemini import image_part
from gifstudio.agents.synthesizer import synthesize
from gifstudio.errors import InvalidRequestError, SessionBusyError
from gifstudio.gif import assemble_gif
from gifstudio.models.request import GenerateRequest, GifRequest
from gifstudio.models.response import GeneratedFrame, GenerationResponse
from gifstudio.routers.sessions import get_session_or_404
from gifstudio.sessions import sessions

router = APIRouter()


@router.post("/api/sessions/{session_id}/generate", response_model=GenerationResponse)
async def generate(session_id: str, body: GenerateRequest) -> GenerationResponse:
    request = body.root
    session = get_session_or_404(session_id)
    logger.info("Generate request: session={sid}, mode={mode}", sid=session_id, mode=request.mode)

    try:
        with sessions.generation(session) as source:
            image = image_part(source)
            prompts = await synthesize(request, session.profile, image)
            result = await dispatch(source, image, prompts, template_for(request.mode))
            session.frames = result.frames
    except SessionBusyError as e:
        raise HTTPException(status_code=409, detail="A generation is already running for this image") from e
    except InvalidRequestError as e:
        logger.warning("Invalid generate request: {error}", error=e)
        raise HTTPException(status_code=400, detail=str(e)) from e

    if not result.generated:
        raise HTTPException(status_code=502, detail=result.error)

    logger.info(
        "Generated {count}/{total} frames for session {sid}",
        count=len(result.generated),
        total=len([p for p in prompts if p]),
        sid=session_id,
    )
    return GenerationResponse(session_id=session_id, prompts=prompts, frames=result.frames, error=result.error)


@router.post("/api/sessions/{session_id}/generate/stream")
async def stream_generate(session_id: str, body: GenerateRequest) -> StreamingResponse:
    """Same pipeline as /generate, emitting each frame as soon as it is ready."""
    request = body.root
    session = get_session_or_404(session_id)
    logger.info("Stream generate request: session={sid}, mode={mode}", sid=session_id, mode=request.mode)

    # Held until the event generator exits.
    try:
        source = sessions.acquire(session)
    except SessionBusyError as e:
        raise HTTPException(status_code=409, detail="A generation is already running for this image") from e
    try:
        image = image_part(source)
        prompts = await synthesize(request, session.profile, image)
    except InvalidRequestError as e:
        sessions.release(session)
        logger.warning("Invalid generate request: {error}", error=e)
        raise HTTPException(status_code=400, detail=str(e)) from e
    except BaseException:
        sessions.release(session)
        raise

    async def event_generator():
        frames: list[GeneratedFrame] = []
        try:
            yield f"event: prompts\ndata: {json.dumps(prompts)}\n\n"
            try:
                async for frame in iter_frames(image, prompts, template_for(request.mode)):
                    frames.append(frame)
                    logger.debug("SSE: frame {index} ready", index=frame.index)
                    yield f"data: {frame.model_dump_json()}\n\n"
            except Exception as e:
                logger.warning("SSE: generation aborted: {error}", error=e)
                detail = {"detail": f"Error generating images: {str(e) or 'Unknown error'}"}
                yield f"event: generation-error\ndata: {json.dumps(detail)}\n\n"

            original = original_frame(source)
            frames.insert(0, original)
            session.frames = frames
            yield f"data: {original.model_dump_json()}\n\n"
        finally:
            sessions.release(session)
        logger.debug("SSE: done event sent")
        yield "event: done\ndata: {}\n\n"

    return StreamingResponse(event_generator(), media_type="text/event-stream")


@router.post("/api/sessions/{session_id}/gif")
async def create_gif(session_id: str, request: GifRequest) -> Response:
    session = get_session_or_404(session_id)
    try:
        data = assemble_gif(session.frames, delay_ms=request.delay_ms, loop=request.loop)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    disposition = "attachment" if request.download else "inline"
    return Response(
        content=data,
        media_type="image/gif",
        headers={"Content-Disposition": f'{disposition}; filename="animation.gif"'},
    )
