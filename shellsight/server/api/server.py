"""
FastAPI server for ShellSight.
Handles recording listing/download endpoints and WebSocket replay connections.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel

from shellsight.shared import ClientAction, ClientRequest, ServerMessage
from shellsight.server.replay import ReplayController
from shellsight.server.storage import (
    RecordingLibrary,
    RecordingNotFoundError,
    StorageConfig,
    apply_storage_overrides,
    load_storage_overrides,
    save_storage_overrides,
)
from shellsight.server.storage.keys import is_safe_folder

logger = logging.getLogger(__name__)


class StorageConfigUpdate(BaseModel):
    bucket: str = ""


def create_app(
    library: RecordingLibrary,
    storage_config: Optional[StorageConfig] = None,
    default_speed: float = 1.0,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("API server starting up")

        yield

        logger.info("API server shutting down")
        for controller in list(app.state.controllers):
            controller.close()
        app.state.controllers.clear()

    app = FastAPI(
        title="ShellSight API",
        description="Replay terminal sessions recorded with script",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.library = library
    app.state.storage_config = storage_config or StorageConfig()
    app.state.default_speed = default_speed
    app.state.controllers = set()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)

    return app


def _namespace(library: RecordingLibrary, user: Optional[str]) -> Optional[str]:
    try:
        return library.resolve_namespace(user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def register_routes(app: FastAPI):
    """Register all API routes."""

    # ==================== Recordings ====================

    @app.get("/api/script-folders")
    def list_script_folders(request: Request, user: Optional[str] = None):
        """List playable recordings with their durations."""
        library: RecordingLibrary = request.app.state.library
        namespace = _namespace(library, user)

        try:
            recordings = library.list_recordings(namespace)
        except Exception as e:
            logger.error(f"Error listing recordings: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        logger.debug(f"Returning {len(recordings)} recordings")
        return {"folders": [r.to_dict() for r in recordings]}

    @app.get("/api/script-content/{folder}")
    def get_script_content(request: Request, folder: str, user: Optional[str] = None):
        """Raw typescript output of a recording."""
        library: RecordingLibrary = request.app.state.library
        namespace = _namespace(library, user)

        try:
            content = library.get_typescript_text(folder, namespace)
        except RecordingNotFoundError:
            raise HTTPException(status_code=404, detail="Script file not found")
        except Exception as e:
            logger.error(f"Error reading script {folder}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        return {"content": content}

    @app.get("/api/script-download/{folder}")
    def download_script(request: Request, folder: str, user: Optional[str] = None):
        """Download a recording as a .tgz archive."""
        library: RecordingLibrary = request.app.state.library
        namespace = _namespace(library, user)

        try:
            archive = library.build_archive(folder, namespace)
        except RecordingNotFoundError:
            raise HTTPException(status_code=404, detail="Script files not found")
        except Exception as e:
            logger.error(f"Error packing {folder}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        return Response(
            content=archive,
            media_type="application/gzip",
            headers={"Content-Disposition": f'attachment; filename="{folder}.tgz"'},
        )

    # ==================== Storage ====================

    @app.get("/api/health")
    async def health_check(request: Request):
        library: RecordingLibrary = request.app.state.library
        return {
            "status": "ok",
            "bucket": library.bucket,
            "backend": library.store.name,
            "prefix": library.prefix,
            "per_user": library.per_user,
            "replays": [
                c.session.to_dict() for c in request.app.state.controllers if c.session is not None
            ],
        }

    @app.get("/api/storage-config")
    def get_storage_config(request: Request):
        config: StorageConfig = request.app.state.storage_config
        overrides = load_storage_overrides(config.config_file)
        return {
            "backend": config.backend,
            "bucket": overrides.get("bucket", config.bucket),
            "root_dir": overrides.get("root_dir", config.root_dir),
            "prefix": config.prefix,
            "per_user": config.per_user,
        }

    @app.post("/api/storage-config")
    def update_storage_config(request: Request, update: StorageConfigUpdate):
        if not update.bucket:
            raise HTTPException(status_code=400, detail="Bucket is required")
        if not is_safe_folder(update.bucket):
            raise HTTPException(status_code=400, detail="Invalid bucket name")

        config: StorageConfig = request.app.state.storage_config
        if not save_storage_overrides(config.config_file, update.bucket):
            raise HTTPException(status_code=500, detail="Failed to save configuration")

        # Swap in a fresh library; sessions already playing keep their data
        new_config = apply_storage_overrides(config)
        request.app.state.storage_config = new_config
        request.app.state.library = RecordingLibrary.from_config(new_config)
        logger.info(f"Storage reconfigured: bucket={new_config.bucket} root={new_config.root_dir}")

        return {"success": True}

    @app.get("/api/storage-test")
    def test_storage(request: Request):
        library: RecordingLibrary = request.app.state.library
        try:
            message = library.check_connection()
        except Exception as e:
            logger.debug(f"Storage connection test failed: {e}")
            raise HTTPException(status_code=400, detail=str(e))
        return {"success": True, "message": message}

    # ==================== WebSocket ====================

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """WebSocket for replay streaming."""
        await websocket.accept()
        logger.info("WebSocket client connected")

        outbox: asyncio.Queue = asyncio.Queue()
        controller = ReplayController(emit=outbox.put_nowait)
        websocket.app.state.controllers.add(controller)
        sender = asyncio.create_task(send_loop(websocket, outbox, controller))

        try:
            while True:
                data = await websocket.receive_text()
                await handle_client_message(websocket.app, controller, outbox, data)

        except WebSocketDisconnect:
            logger.info("WebSocket client disconnected")
        except Exception as e:
            logger.error(f"WebSocket error: {e}")
        finally:
            controller.close()
            websocket.app.state.controllers.discard(controller)
            sender.cancel()
            with suppress(asyncio.CancelledError):
                await sender


async def handle_client_message(app: FastAPI, controller: ReplayController, outbox: asyncio.Queue, raw: str):
    """Dispatch one client message. Problems are reported as error messages."""
    try:
        request = ClientRequest.from_json(raw)
    except ValueError as e:
        outbox.put_nowait(ServerMessage.error(str(e)))
        return

    if request.action == ClientAction.PING:
        outbox.put_nowait(ServerMessage.pong())

    elif request.action == ClientAction.STOP:
        controller.stop()

    elif request.action == ClientAction.REPLAY:
        library: RecordingLibrary = app.state.library
        try:
            namespace = library.resolve_namespace(request.user)
            recording = await run_in_threadpool(library.load_recording, request.folder, namespace)
        except RecordingNotFoundError:
            outbox.put_nowait(ServerMessage.error("Script files not found"))
            return
        except ValueError as e:
            outbox.put_nowait(ServerMessage.error(str(e)))
            return
        except Exception as e:
            logger.error(f"Failed to load recording {request.folder}: {e}")
            outbox.put_nowait(ServerMessage.error(f"Failed to load recording: {e}"))
            return

        speed = request.speed if request.speed is not None else app.state.default_speed
        controller.play(recording, speed)


async def send_loop(websocket: WebSocket, outbox: asyncio.Queue, controller: ReplayController):
    """Forward queued replay messages to the client."""
    while True:
        message: ServerMessage = await outbox.get()
        try:
            await websocket.send_json(message.to_dict())
        except Exception as e:
            logger.warning(f"Dropping connection, send failed: {e}")
            controller.close()
            break
