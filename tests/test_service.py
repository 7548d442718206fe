"""
Tests for the uploader service: subscription lifecycle tied to the signed-in
user, reconciliation of local and remote writes, and the webhook share flow.
"""

from unittest.mock import MagicMock

import pytest

from uploader.adapters.base import snapshot_changes
from uploader.errors import InvalidTransition, RecordNotFound, SubscriptionFailed, TransferFailed
from uploader.models import UploadStatus
from uploader.webhook import WebhookResponse

from .conftest import USER_ID


class TestSubscriptionLifecycle:
    """Tests for one subscription per signed-in user."""

    def test_initialize_subscribes_signed_in_user(self, service, documents):
        assert service.subscribed_user == USER_ID
        assert len(documents.subscriptions_for(USER_ID)) == 1
        assert service.wait_for_sync(timeout=0)

    def test_existing_documents_loaded_on_subscribe(self, auth, documents, objects, settings,
                                                    make_document, tmp_path):
        from uploader.config import UploaderConfig
        from uploader.service import UploaderService

        documents.set(USER_ID, "old", make_document(status="completed", url="https://x/old.mp4"))
        svc = UploaderService(UploaderConfig(DATA_DIR=str(tmp_path)), auth=auth,
                              documents=documents, objects=objects, settings=settings)
        svc.initialize(configure_logging=False)
        try:
            assert [r.id for r in svc.videos()] == ["old"]
        finally:
            svc.stop()

    def test_sign_out_tears_down_and_clears(self, service, auth, documents, video_file):
        service.upload(video_file, "Clip")

        auth.sign_out()

        assert documents.subscriptions_for(USER_ID) == []
        assert service.subscription is None
        assert service.videos() == []

    def test_sign_in_again_resubscribes(self, service, auth, documents, video_file):
        record = service.upload(video_file, "Clip")
        auth.sign_out()

        auth.sign_in(USER_ID, "user@example.com")

        assert len(documents.subscriptions_for(USER_ID)) == 1
        assert [r.id for r in service.videos()] == [record.id]

    def test_repeated_auth_events_keep_single_subscription(self, service, auth, documents):
        service._handle_auth_change(auth.current_user)
        service._handle_auth_change(auth.current_user)

        assert len(documents.subscriptions_for(USER_ID)) == 1

    def test_switching_user_replaces_subscription(self, service, auth, documents, video_file):
        service.upload(video_file, "Clip")

        auth.sign_in("user-2", "two@example.com")

        assert documents.subscriptions_for(USER_ID) == []
        assert len(documents.subscriptions_for("user-2")) == 1
        assert service.videos() == []

    def test_late_batch_from_closed_subscription_is_dropped(self, service, auth, make_document):
        old = service.subscription
        auth.sign_out()

        old.on_batch(snapshot_changes({}, {"late": make_document(status="completed", url="https://x")}))
        old.on_error(SubscriptionFailed("offline"))

        assert service.videos() == []
        assert service.reconciler.last_error is None

    def test_late_batch_does_not_leak_into_next_user(self, service, auth, make_document):
        old = service.subscription
        auth.sign_in("user-2", "two@example.com")

        old.on_batch(snapshot_changes({}, {"late": make_document()}))

        assert service.subscribed_user == "user-2"
        assert service.videos() == []

    def test_refresh_replaces_subscription(self, service, documents):
        first = service.subscription

        service.refresh()

        assert not first.active
        assert documents.subscriptions_for(USER_ID) == [service.subscription]


class TestReconciliation:
    """Tests for local writes round-tripping through the change stream."""

    def test_upload_reaches_completed(self, service, documents, video_file):
        record = service.upload(video_file, "Clip")

        assert record.status == UploadStatus.COMPLETED
        assert service.get_video(record.id).video_url == record.video_url
        assert service.reconciler.batches_applied >= 4

    def test_remote_write_from_other_client_appears(self, service, documents, make_document):
        with service.notifier.subscribe() as subscription:
            documents.set(USER_ID, "remote", make_document(status="uploading"))

            assert subscription.wait(timeout=1)
        assert service.get_video("remote").status == UploadStatus.UPLOADING

    def test_remote_delete_removes_local_record(self, service, documents, video_file):
        record = service.upload(video_file, "Clip")

        documents.delete(USER_ID, record.id)

        assert service.get_video(record.id) is None

    def test_other_users_writes_ignored(self, service, documents, make_document):
        documents.set("someone-else", "theirs", make_document())

        assert service.get_video("theirs") is None

    def test_subscription_failure_keeps_records(self, service, documents, video_file):
        record = service.upload(video_file, "Clip")

        service.subscription.fail(SubscriptionFailed("offline"))

        assert service.get_video(record.id) is not None
        assert str(service.reconciler.last_error) == "offline"
        stats = service.get_stats()
        assert stats["last_subscription_error"] == "offline"
        assert stats["subscription_active"] is False

    def test_resubscribe_after_failure_clears_error(self, service, video_file):
        service.upload(video_file, "Clip")
        service.subscription.fail(SubscriptionFailed("offline"))

        service.refresh()

        assert service.reconciler.last_error is None
        assert len(service.videos()) == 1


class TestShare:
    """Tests for sending videos to the webhook."""

    def test_200_marks_processed(self, service, video_file):
        record = service.upload(video_file, "Clip")
        service.webhook = MagicMock()
        service.webhook.send.return_value = WebhookResponse(200, "ok")

        response = service.share(record.id)

        assert response.status_code == 200
        assert service.get_video(record.id).status == UploadStatus.PROCESSED_BY_THUNK
        service.webhook.send.assert_called_once_with(record)

    def test_non_200_leaves_status(self, service, video_file):
        record = service.upload(video_file, "Clip")
        service.webhook = MagicMock()
        service.webhook.send.return_value = WebhookResponse(503, "busy")

        response = service.share(record.id)

        assert response.body == "busy"
        assert service.get_video(record.id).status == UploadStatus.COMPLETED

    def test_unfinished_upload_is_not_sent(self, service, video_file):
        record_id = service.controller.create(video_file, "Clip")
        service.webhook = MagicMock()

        with pytest.raises(InvalidTransition):
            service.share(record_id)

        service.webhook.send.assert_not_called()
        assert service.get_video(record_id).status == UploadStatus.PENDING

    def test_failed_upload_is_not_sent(self, service, objects, video_file):
        objects.put_file = MagicMock(side_effect=TransferFailed("network down"))
        record = service.upload(video_file, "Clip")
        service.webhook = MagicMock()

        with pytest.raises(InvalidTransition):
            service.share(record.id)

        service.webhook.send.assert_not_called()
        assert service.get_video(record.id).status == UploadStatus.FAILED

    def test_unknown_record(self, service):
        with pytest.raises(RecordNotFound):
            service.share("nope")
