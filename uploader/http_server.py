import logging
from typing import Dict, Any
from fastapi import FastAPI, HTTPException
import uvicorn
from threading import Thread

from .errors import (
    InvalidTransition,
    InvalidWebhookURL,
    NotAuthenticated,
    RecordNotFound,
    RemoteWriteFailed,
)
from .models import VideoRecord

logger = logging.getLogger("video_uploader")


def record_to_dict(record: VideoRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "title": record.title,
        "videoURL": record.video_url,
        "createdAt": record.created_at.isoformat(),
        "userId": record.user_id,
        "userEmail": record.user_email,
        "status": record.status.value,
        "localURL": record.local_url,
        "error": record.error,
        "playable": record.is_playable,
    }


class HealthServer:
    def __init__(self, service, port: int = 8000):
        self.service = service
        self.port = port
        self.app = FastAPI(title="Video Uploader API")
        self.setup_routes()
        self.server_thread = None
        self.running = False

    def _get_record(self, record_id: str) -> VideoRecord:
        record = self.service.get_video(record_id)
        if record is None:
            raise HTTPException(status_code=404, detail=f"Video {record_id} not found")
        return record

    def setup_routes(self):
        """Setup API routes"""

        @self.app.get("/healthz")
        def health_check():
            """Health check endpoint"""
            stats = self.service.get_stats()
            return {
                "ok": stats["last_subscription_error"] is None,
                "status": "healthy" if stats["last_subscription_error"] is None else "degraded",
                **stats
            }

        @self.app.get("/videos")
        def list_videos():
            """Videos newest first"""
            return {"videos": [record_to_dict(r) for r in self.service.videos()]}

        @self.app.get("/videos/{record_id}")
        def get_video(record_id: str):
            return record_to_dict(self._get_record(record_id))

        @self.app.post("/videos/{record_id}/retry")
        def retry_video(record_id: str):
            self._get_record(record_id)
            try:
                record = self.service.retry(record_id)
            except NotAuthenticated as e:
                raise HTTPException(status_code=401, detail=str(e))
            except RecordNotFound as e:
                raise HTTPException(status_code=404, detail=str(e))
            if record is None:
                return {"retried": False, "video": record_to_dict(self._get_record(record_id))}
            return {"retried": True, "video": record_to_dict(record)}

        @self.app.post("/videos/{record_id}/share")
        def share_video(record_id: str):
            self._get_record(record_id)
            try:
                response = self.service.share(record_id)
            except InvalidWebhookURL as e:
                raise HTTPException(status_code=400, detail=str(e))
            except InvalidTransition as e:
                raise HTTPException(status_code=409, detail=str(e))
            except RecordNotFound as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"statusCode": response.status_code, "body": response.body}

        @self.app.delete("/videos/{record_id}")
        def delete_video(record_id: str):
            self._get_record(record_id)
            try:
                self.service.delete(record_id)
            except NotAuthenticated as e:
                raise HTTPException(status_code=401, detail=str(e))
            except RemoteWriteFailed as e:
                logger.error(f"Error deleting video {record_id}: {e}")
                raise HTTPException(status_code=502, detail=str(e))
            return {"deleted": record_id}

        @self.app.post("/videos/{record_id}/processed")
        def mark_processed(record_id: str):
            self._get_record(record_id)
            try:
                record = self.service.controller.mark_processed(record_id)
            except NotAuthenticated as e:
                raise HTTPException(status_code=401, detail=str(e))
            except InvalidTransition as e:
                raise HTTPException(status_code=409, detail=str(e))
            except RecordNotFound as e:
                raise HTTPException(status_code=404, detail=str(e))
            except RemoteWriteFailed as e:
                raise HTTPException(status_code=502, detail=str(e))
            return record_to_dict(record)

    def start(self):
        """Start the HTTP server in a background thread"""
        if self.running:
            return

        def run_server():
            try:
                uvicorn.run(
                    self.app,
                    host="0.0.0.0",
                    port=self.port,
                    log_level="warning",  # Reduce uvicorn logging
                    access_log=False
                )
            except Exception as e:
                logger.error(f"HTTP server error: {str(e)}")

        self.server_thread = Thread(target=run_server, daemon=True)
        self.server_thread.start()
        self.running = True

        logger.info(f"HTTP server started on port {self.port}")

    def stop(self):
        """Stop the HTTP server"""
        self.running = False
        logger.info("HTTP server stopped")


def start_health_server(service) -> HealthServer:
    """Start the HTTP server if enabled"""
    if service.config.ENABLE_HTTP_SERVER:
        server = HealthServer(service, service.config.HTTP_PORT)
        server.start()
        return server
    return None
