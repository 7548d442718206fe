"""
Main uploader service.

Owns the record store, the change reconciler and the lifecycle controller,
and keeps exactly one remote change subscription alive while a user is
signed in.
"""

import argparse
import functools
import signal
import sys
import threading
import logging
from typing import Optional, Dict, Any, List

from .adapters.base import DocumentStoreAdapter, ObjectStoreAdapter, SubscriptionHandle
from .adapters.memory_adapter import MemoryDocumentStore, MemoryObjectStore
from .adapters.postgres_adapter import PostgresDocumentStore
from .adapters.s3_adapter import S3ObjectStore
from .auth import AuthProvider, AuthUser, LocalAuthProvider
from .config import UploaderConfig
from .errors import InvalidTransition, RecordNotFound, UploaderError
from .http_server import start_health_server
from .lifecycle import UploadLifecycleController
from .logging_setup import setup_logging, log_exception
from .models import VideoRecord
from .notifications import ChangeNotifier
from .reconciler import ChangeBatch, RemoteChangeReconciler
from .settings import AppSettings
from .store import RecordStore
from .webhook import WebhookResponse, WebhookSender

logger = logging.getLogger("video_uploader")


class UploaderService:
    """Uploader client with adapter-based remote backends"""

    def __init__(self, config: Optional[UploaderConfig] = None,
                 auth: Optional[AuthProvider] = None,
                 documents: Optional[DocumentStoreAdapter] = None,
                 objects: Optional[ObjectStoreAdapter] = None,
                 settings: Optional[AppSettings] = None,
                 webhook: Optional[WebhookSender] = None):
        self.config = config or UploaderConfig.from_env()
        self.auth = auth or LocalAuthProvider()
        self.documents = documents
        self.objects = objects
        self.settings = settings
        self.webhook = webhook
        self.notifier = ChangeNotifier()
        self.store = RecordStore(self.notifier)
        self.reconciler = RemoteChangeReconciler(self.store)
        self.controller: Optional[UploadLifecycleController] = None
        self.subscription: Optional[SubscriptionHandle] = None
        self.subscribed_user: Optional[str] = None
        self.health_server = None
        self._subscription_lock = threading.RLock()
        self._synced = threading.Event()
        self._generation = 0
        self._owned_adapters: List[Any] = []

    def initialize(self, configure_logging: bool = True):
        """Initialize adapters, controller and the auth listener"""
        try:
            if self.settings is None:
                self.settings = AppSettings(self.config.settings_path)

            if configure_logging:
                setup_logging(self.config.LOG_LEVEL, self.config.DATA_DIR, self.settings)

            self.config.validate()

            self._initialize_adapters()

            self.controller = UploadLifecycleController(
                self.auth, self.documents, self.objects, self.store
            )

            if self.webhook is None:
                self.webhook = WebhookSender(self.settings, timeout=self.config.WEBHOOK_TIMEOUT_SEC)

            self.auth.add_state_listener(self._handle_auth_change)
            if self.auth.current_user is not None:
                self._handle_auth_change(self.auth.current_user)

            self.health_server = start_health_server(self)

            logger.info("Uploader service initialized successfully")

        except Exception as e:
            log_exception(logger, f"Failed to initialize uploader service: {e}")
            raise

    def _initialize_adapters(self):
        """Create any adapters not supplied by the caller"""
        if self.documents is None:
            self.documents = self._create_document_store()
            self.documents.connect()
            self._owned_adapters.append(self.documents)

        if self.objects is None:
            self.objects = self._create_object_store()
            self.objects.connect()
            self._owned_adapters.append(self.objects)

        logger.info(
            f"Initialized adapters: {self.config.DOCUMENT_STORE_TYPE} documents, "
            f"{self.config.OBJECT_STORE_TYPE} objects"
        )

    def _create_document_store(self) -> DocumentStoreAdapter:
        """Create document store adapter based on configuration"""

        if self.config.DOCUMENT_STORE_TYPE == "postgres":
            config = self.config.DOCUMENT_STORE_CONFIG
            return PostgresDocumentStore(
                database_url=config["database_url"],
                pool_size=config.get("connection_pool_size", 5),
                timeout=config.get("connection_timeout", 10),
                channel=config.get("channel", "video_documents"),
                retry_ms=self.config.SUBSCRIPTION_RETRY_MS,
                backoff_multiplier=self.config.BACKOFF_MULTIPLIER,
                max_backoff_ms=self.config.MAX_BACKOFF_MS
            )

        elif self.config.DOCUMENT_STORE_TYPE == "memory":
            return MemoryDocumentStore()

        else:
            raise ValueError(f"Unsupported document store type: {self.config.DOCUMENT_STORE_TYPE}")

    def _create_object_store(self) -> ObjectStoreAdapter:
        """Create object store adapter based on configuration"""

        if self.config.OBJECT_STORE_TYPE == "s3":
            config = self.config.OBJECT_STORE_CONFIG
            return S3ObjectStore(
                bucket=config["bucket"],
                region=config.get("region", "us-east-1"),
                endpoint_url=config.get("endpoint_url"),
                public_url=config.get("public_url"),
                url_expiry=config.get("url_expiry", 604800)
            )

        elif self.config.OBJECT_STORE_TYPE == "memory":
            return MemoryObjectStore(self.config.OBJECT_STORE_CONFIG.get("base_url", "memory://videos"))

        else:
            raise ValueError(f"Unsupported object store type: {self.config.OBJECT_STORE_TYPE}")

    def _handle_auth_change(self, user: Optional[AuthUser]) -> None:
        """Keep one subscription per signed-in user, none when signed out"""
        with self._subscription_lock:
            if user is None:
                self._teardown_subscription(clear=True)
                logger.info("Signed out, cleared local records")
                return

            if (self.subscribed_user == user.uid and self.subscription is not None
                    and self.subscription.active):
                return

            switching = self.subscribed_user is not None and self.subscribed_user != user.uid
            self._subscribe(user.uid, clear=switching)

    def _subscribe(self, user_id: str, clear: bool = False) -> None:
        # Caller holds the subscription lock
        self._teardown_subscription(clear=clear)
        self.reconciler.reset()
        self._synced.clear()
        logger.info(f"Setting up change subscription for user {user_id}")
        self.subscribed_user = user_id
        generation = self._generation
        self.subscription = self.documents.subscribe(
            user_id,
            functools.partial(self._on_batch, generation),
            functools.partial(self._on_error, generation),
        )

    def _teardown_subscription(self, clear: bool = False) -> None:
        # Retiring the generation under the apply lock means a batch still in
        # flight on the old handle is dropped, never applied after the clear
        with self.reconciler.apply_lock:
            self._generation += 1
            if clear:
                self.store.clear()

        if self.subscription is not None:
            self.subscription.close()
            logger.info(f"Change subscription for user {self.subscribed_user} removed")
        self.subscription = None
        self.subscribed_user = None

    def _on_batch(self, generation: int, batch: ChangeBatch) -> None:
        with self.reconciler.apply_lock:
            if generation != self._generation:
                logger.debug(f"Dropping change batch from a closed subscription ({len(batch.events)} events)")
                return
            self.reconciler.apply_batch(batch)
        self._synced.set()

    def _on_error(self, generation: int, error: Exception) -> None:
        if generation != self._generation:
            return
        self.reconciler.handle_error(error)

    def refresh(self) -> None:
        """Re-establish the change subscription for the current user"""
        user = self.auth.require_user()
        with self._subscription_lock:
            self._subscribe(user.uid)

    def wait_for_sync(self, timeout: Optional[float] = None) -> bool:
        """Block until the current subscription has delivered a batch"""
        return self._synced.wait(timeout)

    def videos(self) -> List[VideoRecord]:
        return self.store.all()

    def get_video(self, record_id: str) -> Optional[VideoRecord]:
        return self.store.get(record_id)

    def upload(self, local_path: str, title: str) -> VideoRecord:
        record_id = self.controller.upload(local_path, title)
        return self.store.get(record_id)

    def retry(self, record_id: str) -> Optional[VideoRecord]:
        return self.controller.retry(record_id)

    def delete(self, record_id: str) -> None:
        self.controller.delete(record_id)

    def share(self, record_id: str) -> WebhookResponse:
        """
        Send a video to the webhook; a 200 marks it processedByThunk.

        Returns:
            The webhook's status code and body

        Raises:
            RecordNotFound: if the record is unknown
            InvalidTransition: if the record has no playable URL yet
            InvalidWebhookURL: if the configured URL is unusable
        """
        record = self.store.get(record_id)
        if record is None:
            raise RecordNotFound(f"Unknown video record {record_id}")
        if not record.is_playable:
            raise InvalidTransition(f"Video {record_id} is {record.status.value} and has no playable URL")

        response = self.webhook.send(record)
        if response.ok:
            try:
                self.controller.mark_processed(record_id)
            except UploaderError as e:
                logger.error(f"Error updating video status for {record_id}: {e}")
        return response

    def stop(self):
        """Stop the uploader service"""
        with self._subscription_lock:
            self._teardown_subscription()

        if self.health_server:
            self.health_server.stop()

        for adapter in self._owned_adapters:
            adapter.close()
        self._owned_adapters = []

        logger.info("Uploader service stopped")

    def get_stats(self) -> Dict[str, Any]:
        """Get service statistics"""
        by_status: Dict[str, int] = {}
        for record in self.store.all():
            by_status[record.status.value] = by_status.get(record.status.value, 0) + 1

        last_error = self.reconciler.last_error
        return {
            'signed_in': self.auth.current_user is not None,
            'subscribed_user': self.subscribed_user,
            'subscription_active': bool(self.subscription and self.subscription.active),
            'records': len(self.store),
            'records_by_status': by_status,
            'batches_applied': self.reconciler.batches_applied,
            'last_subscription_error': str(last_error) if last_error else None,
            'config': {
                'document_store_type': self.config.DOCUMENT_STORE_TYPE,
                'object_store_type': self.config.OBJECT_STORE_TYPE
            }
        }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="video-uploader", description="Upload and track videos")
    subparsers = parser.add_subparsers(dest="command", required=True)

    upload = subparsers.add_parser("upload", help="Upload a local video file")
    upload.add_argument("path")
    upload.add_argument("--title", required=True)

    subparsers.add_parser("list", help="List videos")

    for name, help_text in (
        ("retry", "Retry a failed upload"),
        ("delete", "Delete a video and its blob"),
        ("share", "Send a video to the webhook"),
    ):
        command = subparsers.add_parser(name, help=help_text)
        command.add_argument("record_id")

    subparsers.add_parser("serve", help="Keep the subscription and HTTP server running")
    return parser


def _print_record(record: Optional[VideoRecord]) -> None:
    if record is None:
        return
    line = f"{record.id}  {record.status.value:<16} {record.title}"
    if record.video_url:
        line += f"  {record.video_url}"
    if record.error:
        line += f"  error: {record.error}"
    print(line)


def signal_handler(signum, frame):
    """Handle shutdown signals"""
    logger.info(f"Received signal {signum}, shutting down...")
    sys.exit(0)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    config = UploaderConfig.from_env()
    if args.command == "serve":
        config.ENABLE_HTTP_SERVER = True

    auth = LocalAuthProvider()
    service = UploaderService(config, auth=auth)

    try:
        service.initialize()
        if config.USER_ID:
            auth.sign_in(config.USER_ID, config.USER_EMAIL)
            service.wait_for_sync(timeout=10)

        if args.command == "upload":
            _print_record(service.upload(args.path, args.title))
        elif args.command == "list":
            for record in service.videos():
                _print_record(record)
        elif args.command == "retry":
            _print_record(service.retry(args.record_id))
        elif args.command == "delete":
            service.delete(args.record_id)
        elif args.command == "share":
            response = service.share(args.record_id)
            print(f"{response.status_code} {response.body}")
        elif args.command == "serve":
            threading.Event().wait()
        return 0

    except UploaderError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    except Exception as e:
        log_exception(logger, f"Uploader failed: {str(e)}")
        return 1
    finally:
        service.stop()


if __name__ == "__main__":
    sys.exit(main())
