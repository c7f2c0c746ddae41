"""
Paste routes.
Handles create (API), view (HTML) and raw (plain text) operations.
"""
import html
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException

from cloudpaste.config import settings
from cloudpaste.errors import (
    PasteNotFoundError,
    PersistenceError,
    StorageError,
    StorageNotReadyError,
)
from cloudpaste.models import CreatePasteResponse, ErrorResponse
from cloudpaste.service import PasteService, get_paste_service

router = APIRouter()
logger = logging.getLogger(__name__)

# Room for field names, filename, language and JSON/form encoding around the content
BODY_ENVELOPE_BYTES = 64 * 1024


class BadPasteRequest(Exception):
    """A create request that is rejected before reaching the paste service."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _error(status_code: int, message: str) -> JSONResponse:
    """Build an {ok: false, error} JSON response."""
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(),
    )


def _text_field(fields: Dict[str, Any], name: str) -> Optional[str]:
    """Return a form/JSON field if it is a string, else None."""
    value = fields.get(name)
    if value is None or not isinstance(value, str):
        return None
    return value


def _check_content_length(request: Request, body_limit: int) -> None:
    """Reject a request whose declared Content-Length is over body_limit."""
    declared = request.headers.get("content-length")
    if declared is None:
        return
    try:
        length = int(declared)
    except ValueError:
        raise BadPasteRequest(400, "Invalid Content-Length header")
    if length > body_limit:
        raise BadPasteRequest(413, f"Request body exceeds {body_limit} bytes")


async def _read_body(request: Request, body_limit: int) -> bytes:
    """
    Read the request body, stopping as soon as it grows past body_limit.

    Raises:
        BadPasteRequest: If the body is larger than body_limit
    """
    chunks = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > body_limit:
            raise BadPasteRequest(413, f"Request body exceeds {body_limit} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


def _replay_request(request: Request, body: bytes) -> Request:
    """Wrap an already read body in a new Request so Starlette can parse it."""
    sent = False

    async def receive():
        nonlocal sent
        if sent:
            return {"type": "http.disconnect"}
        sent = True
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(request.scope, receive)


async def _parse_multipart(request: Request, max_bytes: int):
    """
    Parse a multipart body with text fields capped at max_bytes.

    Raises:
        BadPasteRequest: If the body is malformed or a field is too large
    """
    try:
        return await request.form(max_part_size=max_bytes + 1)
    except (HTTPException, MultiPartException) as e:
        message = getattr(e, "detail", None) or getattr(e, "message", None) or str(e)
        logger.warning(f"Rejected multipart body: {message}")
        if "exceeded maximum size" in message:
            raise BadPasteRequest(413, f"content exceeds {max_bytes} bytes")
        raise BadPasteRequest(400, "Malformed multipart body")


async def _read_paste_request(request: Request, max_bytes: int) -> Dict[str, Any]:
    """
    Pull content and metadata out of a JSON, urlencoded or multipart body.

    JSON and urlencoded bodies are read with a running size limit before
    parsing; multipart text fields are capped by the parser and uploaded
    files are read no further than max_bytes + 1.

    Returns:
        Dict with content (bytes), filename, language and expire

    Raises:
        BadPasteRequest: If the body is malformed or too large
    """
    body_limit = max_bytes + BODY_ENVELOPE_BYTES
    _check_content_length(request, body_limit)

    content_type = request.headers.get("content-type", "")
    upload = None
    if content_type.startswith("multipart/form-data"):
        fields = await _parse_multipart(request, max_bytes)
        upload = fields.get("file")
    elif content_type.startswith("application/json"):
        body = await _read_body(request, body_limit)
        try:
            fields = json.loads(body)
        except ValueError:
            raise BadPasteRequest(400, "Request body is not valid JSON")
        if not isinstance(fields, dict):
            raise BadPasteRequest(400, "Request body must be a JSON object")
    else:
        body = await _read_body(request, body_limit)
        fields = await _replay_request(request, body).form()

    data = b""
    if upload is not None and not isinstance(upload, str):
        data = await upload.read(max_bytes + 1)
    if not data:
        # Browsers send an empty file part when no file was chosen
        data = (_text_field(fields, "content") or "").encode("utf-8")

    if len(data) > max_bytes:
        raise BadPasteRequest(413, f"content exceeds {max_bytes} bytes")

    return {
        "content": data,
        "filename": _text_field(fields, "filename"),
        "language": _text_field(fields, "language"),
        "expire": _text_field(fields, "expire"),
    }


@router.post("/api/paste", response_model=CreatePasteResponse)
async def create_paste(
    request: Request,
    service: PasteService = Depends(get_paste_service),
):
    """
    Create a new paste from text content or an uploaded file.

    Returns:
        ok, slug, shareable URL and backend link, or ok=false with an error
    """
    try:
        fields = await _read_paste_request(request, settings.MAX_CONTENT_BYTES)
    except BadPasteRequest as e:
        return _error(e.status_code, e.message)

    if fields["expire"]:
        # Accepted for compatibility, pastes never expire
        logger.debug(f"Ignoring expire={fields['expire']!r}")

    try:
        created = await service.create(
            fields["content"],
            filename=fields["filename"],
            language=fields["language"],
        )
    except StorageNotReadyError as e:
        logger.warning(f"Create rejected: {e}")
        return _error(503, "Storage backend is not ready, try again shortly")
    except StorageError as e:
        logger.error(f"Upload error: {e}")
        return _error(502, "Failed to upload paste to storage")
    except PersistenceError as e:
        logger.error(f"Persistence error: {e}")
        return _error(500, "Failed to save paste")
    except Exception:
        logger.exception("Unexpected error creating paste")
        return _error(500, "Internal server error")

    return CreatePasteResponse(
        slug=created.slug,
        url=created.url,
        backend_url=created.backend_url,
    )


@router.get("/paste/{slug}", response_class=HTMLResponse)
async def view_paste(
    slug: str,
    service: PasteService = Depends(get_paste_service),
):
    """
    View a paste as HTML.

    Returns:
        HTML page with the paste, a 404 page, or a redirect to the backend link
    """
    try:
        paste = await service.view(slug)
    except PasteNotFoundError:
        return HTMLResponse(_render_404_page(), status_code=404)
    except StorageError:
        return HTMLResponse(_render_error_page(), status_code=502)

    if paste.fallback_url:
        return RedirectResponse(paste.fallback_url, status_code=302)

    return HTMLResponse(
        _render_paste_page(
            slug=slug,
            text=paste.text,
            filename=paste.record.filename,
            language=paste.record.language,
            storage_link=paste.record.storage_link,
        )
    )


@router.get("/raw/{slug}")
async def raw_paste(
    slug: str,
    service: PasteService = Depends(get_paste_service),
):
    """Return the paste as plain text."""
    try:
        paste = await service.raw(slug)
    except PasteNotFoundError:
        return PlainTextResponse("Not found", status_code=404)
    except StorageError:
        return PlainTextResponse("Storage backend unavailable", status_code=502)

    if paste.fallback_url:
        return RedirectResponse(paste.fallback_url, status_code=302)

    return PlainTextResponse(paste.text, media_type="text/plain; charset=utf-8")


_PAGE_HEAD = """<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title} - cloudpaste</title>
    <link rel="stylesheet" href="/public/style.css">
</head>"""


def _render_paste_page(
    slug: str,
    text: str,
    filename: str,
    language: str,
    storage_link: str,
) -> str:
    """Render a paste with its filename and language tag."""
    language_class = "".join(c for c in language if c.isalnum() or c in "-_+")
    return _PAGE_HEAD.format(title=html.escape(filename)) + f"""
<body>
    <div class="container">
        <h1>{html.escape(filename)}</h1>
        <div class="meta">
            <span class="language">{html.escape(language)}</span>
            <a href="/raw/{html.escape(slug)}">raw</a>
            <a href="{html.escape(storage_link)}">storage link</a>
        </div>
        <pre class="content"><code class="language-{language_class}">{html.escape(text)}</code></pre>
        <div class="footer">
            <p><a href="/">Create a new paste</a></p>
        </div>
    </div>
</body>
</html>"""


def _render_404_page() -> str:
    """Render a 404 error page."""
    return _PAGE_HEAD.format(title="Not Found") + """
<body>
    <div class="container centered">
        <h1>404</h1>
        <p>This paste was not found.</p>
        <a class="button" href="/">Create a new paste</a>
    </div>
</body>
</html>"""


def _render_error_page() -> str:
    """Render the page shown when storage cannot serve a paste."""
    return _PAGE_HEAD.format(title="Unavailable") + """
<body>
    <div class="container centered">
        <h1>502</h1>
        <p>The paste could not be loaded from storage. Please try again later.</p>
        <a class="button" href="/">Create a new paste</a>
    </div>
</body>
</html>"""
