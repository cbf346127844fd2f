"""Tests for the broadcast hub and webhook subscriber."""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from design_wiki.broadcast import BroadcastHub, WebhookSubscriber, file_changed_message


class TestFileChangedMessage:
    def test_message_shape(self):
        message = json.loads(file_changed_message("combat/spell.md", "update"))
        assert message == {
            "type": "file-changed",
            "payload": {"path": "combat/spell.md", "action": "update"},
        }

    def test_non_ascii_path_kept(self):
        assert "角色系统/滑移.md" in file_changed_message("角色系统/滑移.md", "create")

    def test_invalid_action(self):
        with pytest.raises(ValueError, match="Invalid action"):
            file_changed_message("a.md", "rename")


class TestBroadcastHub:
    def test_broadcast_reaches_all_subscribers(self):
        hub = BroadcastHub()
        first, second = MagicMock(), MagicMock()
        hub.subscribe(first)
        hub.subscribe(second)

        assert hub.broadcast("hello") == 2
        first.assert_called_once_with("hello")
        second.assert_called_once_with("hello")

    def test_subscribe_twice_registers_once(self):
        hub = BroadcastHub()
        subscriber = MagicMock()
        hub.subscribe(subscriber)
        hub.subscribe(subscriber)
        assert hub.subscriber_count == 1

    def test_unsubscribe(self):
        hub = BroadcastHub()
        subscriber = MagicMock()
        hub.subscribe(subscriber)
        hub.unsubscribe(subscriber)
        hub.broadcast("hello")
        subscriber.assert_not_called()
        assert hub.subscriber_count == 0

    def test_failing_subscriber_removed(self):
        hub = BroadcastHub()
        broken = MagicMock(side_effect=ConnectionError("gone"))
        healthy = MagicMock()
        hub.subscribe(broken)
        hub.subscribe(healthy)

        assert hub.broadcast("one") == 1
        assert hub.subscriber_count == 1
        hub.broadcast("two")
        assert broken.call_count == 1
        assert healthy.call_count == 2

    def test_hub_is_callable(self):
        hub = BroadcastHub()
        subscriber = MagicMock()
        hub.subscribe(subscriber)
        hub("msg")
        subscriber.assert_called_once_with("msg")


class TestWebhookSubscriber:
    def test_delivers_to_every_url(self):
        subscriber = WebhookSubscriber(["https://a.example/hook", "https://b.example/hook"])
        with patch.object(subscriber, "_deliver_sync") as deliver:
            subscriber("payload")
            subscriber.shutdown()

        delivered = sorted(call.args for call in deliver.call_args_list)
        assert delivered == [
            ("https://a.example/hook", "payload"),
            ("https://b.example/hook", "payload"),
        ]

    def test_no_delivery_after_shutdown(self):
        subscriber = WebhookSubscriber(["https://a.example/hook"])
        subscriber.shutdown()
        with patch.object(subscriber, "_deliver_sync") as deliver:
            subscriber("payload")
        deliver.assert_not_called()

    def test_deliver_posts_json(self):
        subscriber = WebhookSubscriber(["https://a.example/hook"])
        response = MagicMock(status_code=200)
        with patch("design_wiki.broadcast.httpx.Client") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            client.post.return_value = response
            assert subscriber._deliver_sync("https://a.example/hook", '{"a": 1}') is True

        _, kwargs = client.post.call_args
        assert kwargs["content"] == b'{"a": 1}'
        assert kwargs["headers"]["Content-Type"] == "application/json"
        subscriber.shutdown()

    def test_deliver_http_error_returns_false(self):
        subscriber = WebhookSubscriber(["https://a.example/hook"])
        response = MagicMock(status_code=500, text="boom")
        with patch("design_wiki.broadcast.httpx.Client") as client_cls:
            client_cls.return_value.__enter__.return_value.post.return_value = response
            assert subscriber._deliver_sync("https://a.example/hook", "{}") is False
        subscriber.shutdown()

    def test_deliver_request_error_is_logged_not_raised(self):
        subscriber = WebhookSubscriber(["https://a.example/hook"])
        with patch("design_wiki.broadcast.httpx.Client") as client_cls:
            client_cls.return_value.__enter__.return_value.post.side_effect = (
                httpx.ConnectError("refused")
            )
            assert subscriber._deliver_sync("https://a.example/hook", "{}") is False
        subscriber.shutdown()
