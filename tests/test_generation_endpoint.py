import io
import json
from unittest.mock import AsyncMock, patch

import pytest
from google.genai import types
from httpx import ASGITransport, AsyncClient
from PIL import Image

from gifstudio.agents.dispatcher import FRAME_TEMPLATE
from gifstudio.errors import SessionBusyError
from gifstudio.main import app
from gifstudio.sessions import sessions

from .conftest import API_KEY_HEADER, MOCK_PROFILE, TINY_DATA_URL, image_parts, png_data_url


def _session(profile=MOCK_PROFILE):
    return sessions.create(TINY_DATA_URL, profile)


def _parse_sse(body: str) -> list[tuple[str, dict | list]]:
    """Split an SSE body into (event, data) pairs. Unnamed events are 'message'."""
    events = []
    for block in body.strip().split("\n\n"):
        event = "message"
        data = None
        for line in block.splitlines():
            if line.startswith("event: "):
                event = line[len("event: ") :]
            elif line.startswith("data: "):
                data = json.loads(line[len("data: ") :])
        events.append((event, data))
    return events


@pytest.mark.asyncio
async def test_character_generation_end_to_end(mock_generate_image):
    session = _session()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.post(
            f"/api/sessions/{session.id}/generate",
            json={"mode": "character", "characters": "rabbit, fox"},
            headers=API_KEY_HEADER,
        )

    assert resp.status_code == 200
    data = resp.json()
    assert data["error"] is None
    assert len(data["prompts"]) == 6
    assert data["prompts"][0].startswith("Transform this image into a rabbit")
    assert data["prompts"][1].startswith("Transform this image into a fox")
    assert all("unknown" not in p for p in data["prompts"])

    frames = data["frames"]
    assert len(frames) == 7
    assert frames[0] == {"data_url": TINY_DATA_URL, "prompt": "Original Image", "index": 0}
    assert [f["index"] for f in frames] == list(range(7))
    assert frames[1]["prompt"] == FRAME_TEMPLATE.format(prompt=data["prompts"][0])
    assert len(session.frames) == 7
    assert session.generating is False


@pytest.mark.asyncio
async def test_manual_animation_skips_empty_slots(mock_generate_image):
    session = _session(profile=None)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.post(
            f"/api/sessions/{session.id}/generate",
            json={"mode": "animation", "auto": False, "frame_prompts": ["raise arm", "", "wave"]},
            headers=API_KEY_HEADER,
        )

    assert resp.status_code == 200
    assert resp.json()["prompts"] == ["raise arm", "", "wave"]
    assert [f["index"] for f in resp.json()["frames"]] == [0, 1, 3]
    assert mock_generate_image.call_count == 2


@pytest.mark.asyncio
async def test_style_generation_sends_prompt_verbatim(mock_generate_text, mock_generate_image):
    mock_generate_text.return_value = '{"palette": ["#000000"], "subject": "a cat", "composition": "centered"}'
    session = _session()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.post(
            f"/api/sessions/{session.id}/generate",
            json={"mode": "style", "styles": "Pixel art, Watercolor"},
            headers=API_KEY_HEADER,
        )

    assert resp.status_code == 200
    prompts = resp.json()["prompts"]
    assert len(prompts) == 2
    assert "The subject is: a cat." in prompts[0]
    sent = [call.args[1] for call in mock_generate_image.call_args_list]
    assert sent == prompts


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body,detail",
    [
        ({"mode": "animation", "prompt": "   "}, "Please enter a prompt"),
        ({"mode": "character", "characters": " , "}, "Please enter a character or select from presets"),
        ({"mode": "style", "styles": ""}, "Please enter a style or select from presets"),
        (
            {"mode": "animation", "auto": False, "frame_prompts": ["", " "]},
            "Please enter at least one prompt to describe the image transformation",
        ),
    ],
)
async def test_generate_rejects_empty_input(body, detail, mock_generate_text, mock_generate_image):
    session = _session()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.post(f"/api/sessions/{session.id}/generate", json=body, headers=API_KEY_HEADER)

    assert resp.status_code == 400
    assert resp.json() == {"detail": detail}
    mock_generate_text.assert_not_called()
    mock_generate_image.assert_not_called()
    assert session.generating is False


@pytest.mark.asyncio
async def test_generate_rejects_unknown_mode():
    session = _session()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.post(
            f"/api/sessions/{session.id}/generate", json={"mode": "remix"}, headers=API_KEY_HEADER
        )

    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_generate_without_any_frames_returns_502():
    session = _session()
    with patch(
        "gifstudio.agents.dispatcher.generate_image",
        new_callable=AsyncMock,
        return_value=[types.Part(text="I cannot edit this image.")],
    ):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            resp = await client.post(
                f"/api/sessions/{session.id}/generate",
                json={"mode": "character", "characters": "rabbit"},
                headers=API_KEY_HEADER,
            )

    assert resp.status_code == 502
    assert resp.json() == {"detail": "No images were generated. Please try again."}
    assert session.generating is False


@pytest.mark.asyncio
async def test_generate_partial_failure_keeps_frames():
    session = _session()
    mock = AsyncMock(side_effect=[image_parts(), image_parts(), RuntimeError("quota exceeded")])
    with patch("gifstudio.agents.dispatcher.generate_image", mock):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            resp = await client.post(
                f"/api/sessions/{session.id}/generate",
                json={"mode": "character", "characters": "rabbit"},
                headers=API_KEY_HEADER,
            )

    assert resp.status_code == 200
    data = resp.json()
    assert data["error"] == "Error generating images: quota exceeded"
    assert [f["index"] for f in data["frames"]] == [0, 1, 2]
    assert mock.call_count == 3


@pytest.mark.asyncio
async def test_generate_while_busy_returns_409(mock_generate_image):
    session = _session()
    session.generating = True
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.post(
            f"/api/sessions/{session.id}/generate",
            json={"mode": "character", "characters": "rabbit"},
            headers=API_KEY_HEADER,
        )

    assert resp.status_code == 409
    mock_generate_image.assert_not_called()


@pytest.mark.asyncio
async def test_generate_unknown_session_returns_404():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.post(
            "/api/sessions/missing/generate",
            json={"mode": "character", "characters": "rabbit"},
            headers=API_KEY_HEADER,
        )

    assert resp.status_code == 404


# --- SSE streaming ---


@pytest.mark.asyncio
async def test_stream_emits_frames_then_original(mock_generate_image):
    session = _session()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.post(
            f"/api/sessions/{session.id}/generate/stream",
            json={"mode": "character", "characters": "rabbit, fox"},
            headers=API_KEY_HEADER,
        )

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    events = _parse_sse(resp.text)

    assert events[0][0] == "prompts"
    assert len(events[0][1]) == 6
    frames = [data for name, data in events if name == "message"]
    assert [f["index"] for f in frames] == [1, 2, 3, 4, 5, 6, 0]
    assert events[-1] == ("done", {})
    assert [f.index for f in session.frames] == list(range(7))
    assert session.generating is False


@pytest.mark.asyncio
async def test_stream_reports_generation_error():
    session = _session()
    mock = AsyncMock(side_effect=[image_parts(), ConnectionError("connection reset")])
    with patch("gifstudio.agents.dispatcher.generate_image", mock):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            resp = await client.post(
                f"/api/sessions/{session.id}/generate/stream",
                json={"mode": "character", "characters": "rabbit"},
                headers=API_KEY_HEADER,
            )

    events = _parse_sse(resp.text)
    names = [name for name, _ in events]
    assert names == ["prompts", "message", "generation-error", "message", "done"]
    assert events[2][1] == {"detail": "Error generating images: connection reset"}
    assert [f.index for f in session.frames] == [0, 1]


@pytest.mark.asyncio
async def test_stream_rejects_empty_input():
    session = _session()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.post(
            f"/api/sessions/{session.id}/generate/stream",
            json={"mode": "character", "characters": ""},
            headers=API_KEY_HEADER,
        )

    assert resp.status_code == 400
    assert session.generating is False


@pytest.mark.asyncio
async def test_stream_while_busy_returns_409(mock_generate_image):
    session = _session()
    session.generating = True
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.post(
            f"/api/sessions/{session.id}/generate/stream",
            json={"mode": "character", "characters": "rabbit"},
            headers=API_KEY_HEADER,
        )

    assert resp.status_code == 409
    mock_generate_image.assert_not_called()


@pytest.mark.asyncio
async def test_stream_holds_session_while_prompts_are_built(mock_generate_text, mock_generate_image):
    session = _session()
    seen = {}

    async def build_prompts(image, instruction):
        try:
            sessions.replace_image(session, png_data_url((0, 0, 255)), None)
            seen["replace"] = "replaced"
        except SessionBusyError:
            seen["replace"] = "busy"
        second = await client.post(
            f"/api/sessions/{session.id}/generate/stream",
            json={"mode": "character", "characters": "fox"},
            headers=API_KEY_HEADER,
        )
        seen["second_stream"] = second.status_code
        return json.dumps([f"step {i}" for i in range(1, 7)])

    mock_generate_text.side_effect = build_prompts
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.post(
            f"/api/sessions/{session.id}/generate/stream",
            json={"mode": "animation", "prompt": "wave"},
            headers=API_KEY_HEADER,
        )

    assert resp.status_code == 200
    assert seen == {"replace": "busy", "second_stream": 409}
    frames = [data for name, data in _parse_sse(resp.text) if name == "message"]
    assert frames[-1] == {"data_url": TINY_DATA_URL, "prompt": "Original Image", "index": 0}
    assert session.image == TINY_DATA_URL
    assert session.generating is False



# --- GIF assembly ---


@pytest.mark.asyncio
async def test_gif_requires_two_frames():
    session = _session()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.post(f"/api/sessions/{session.id}/gif", json={}, headers=API_KEY_HEADER)

    assert resp.status_code == 400
    assert resp.json() == {"detail": "Please generate at least 2 images first"}


@pytest.mark.asyncio
async def test_gif_after_generation():
    session = _session()
    colors = [(40 * i, 255 - 40 * i, 0) for i in range(1, 7)]
    mock = AsyncMock(side_effect=[image_parts(c) for c in colors])
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        with patch("gifstudio.agents.dispatcher.generate_image", mock):
            await client.post(
                f"/api/sessions/{session.id}/generate",
                json={"mode": "character", "characters": "rabbit"},
                headers=API_KEY_HEADER,
            )
        inline = await client.post(f"/api/sessions/{session.id}/gif", json={"delay_ms": 500}, headers=API_KEY_HEADER)
        download = await client.post(
            f"/api/sessions/{session.id}/gif", json={"download": True}, headers=API_KEY_HEADER
        )

    assert inline.status_code == 200
    assert inline.headers["content-type"] == "image/gif"
    assert inline.headers["content-disposition"] == 'inline; filename="animation.gif"'
    gif = Image.open(io.BytesIO(inline.content))
    assert gif.n_frames == 7
    assert gif.info["duration"] == 500

    assert download.headers["content-disposition"] == 'attachment; filename="animation.gif"'


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"delay_ms": 50}, {"delay_ms": 2000}, {"loop": -1}])
async def test_gif_rejects_out_of_range_options(body):
    session = _session()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.post(f"/api/sessions/{session.id}/gif", json=body, headers=API_KEY_HEADER)

    assert resp.status_code == 422
