# framecast/server.py
from __future__ import annotations
from datetime import datetime
from pathlib import Path
from zipfile import ZipFile, ZIP_DEFLATED
import logging
import os
import uuid

import uvicorn
from fastapi import FastAPI
from fastapi.responses import FileResponse, JSONResponse

from .browser import ensure_playwright_installed
from .errors import BrowserNotFoundError, ProtocolError
from .models import CaptureConfig
from .render import render_capture

logger = logging.getLogger("framecast.server")

OUT_ROOT = Path(os.getenv("FRAMECAST_OUTPUT_ROOT", Path.home() / "Movies" / "Framecast"))

app = FastAPI(title="framecast", docs_url=None, redoc_url=None)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"ok": False, "error": message}, status_code=status_code)


def _zip_frames(paths, zip_path: Path) -> Path:
    with ZipFile(zip_path, "w", ZIP_DEFLATED) as zf:
        for f in paths:
            zf.write(f, arcname=f.name)
    return zip_path


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/capture")
async def capture(config: CaptureConfig):
    stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    out_dir = OUT_ROOT / f"{stamp}_{uuid.uuid4().hex[:6]}"
    out_dir.mkdir(parents=True)

    # all artifacts of a request stay inside its own output directory
    config = config.model_copy(update={
        "frames_dir": out_dir / "frames",
        "output_filename": out_dir / Path(config.output_filename).name,
        "keep_frames": config.keep_frames or config.no_video,
    })
    (out_dir / "capture.json").write_text(config.model_dump_json(indent=2), encoding="utf-8")

    try:
        result = await render_capture(config)
    except BrowserNotFoundError as e:
        return _error(str(e), 503)
    except ProtocolError as e:
        logger.error("Capture of %s failed: %s", config.url, e)
        return _error(str(e), 502)

    if not result.ok:
        return _error(f"{result.encode_error}; frames kept in {result.session.frames_dir}", 400)

    if result.video is not None:
        return FileResponse(
            path=result.video,
            media_type="video/mp4",
            filename=result.video.name,
            headers={"Cache-Control": "no-store"},
        )

    zip_path = _zip_frames(result.session.artifacts, out_dir / "frames.zip")
    return FileResponse(
        path=zip_path,
        media_type="application/zip",
        filename="frames.zip",
        headers={"Cache-Control": "no-store"},
    )


def run() -> None:
    port = int(os.getenv("FRAMECAST_PORT", "7080"))
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    try:
        ensure_playwright_installed()
    except BrowserNotFoundError as e:
        logger.error("%s; captures will answer 503 until Chromium is installed", e)
    logger.info("framecast available at http://127.0.0.1:%s/ (health: /health)", port)
    uvicorn.run(app, host="127.0.0.1", port=port, reload=False, log_level="info")
