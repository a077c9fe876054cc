import json
from unittest.mock import MagicMock, patch

from django.test import SimpleTestCase, override_settings

from event_bus.models.push_notification_payload import PushNotificationPayload
from event_bus.publisher import publish


class PushNotificationPayloadTest(SimpleTestCase):
    def test_to_dict(self):
        payload = PushNotificationPayload(
            target_user_id="v1",
            push_tokens=["tok-1"],
            headings={"en": "New message"},
            contents={"en": "Hi"},
            data={"conversationId": "v1_u1"},
            request_id="req-1",
        )

        body = json.loads(payload.to_json())

        self.assertEqual(body["notification"]["target_user_id"], "v1")
        self.assertEqual(body["notification"]["android_channel_id"], "chat-messages")
        self.assertEqual(body["notification"]["data"], {"conversationId": "v1_u1"})
        self.assertIsNone(body["notification"]["url"])
        self.assertEqual(body["meta"], {
            "event_type": "notification.requested",
            "source_service_id": "marketchat",
            "request_id": "req-1",
        })

    def test_data_defaults_to_empty(self):
        payload = PushNotificationPayload("v1", [], {}, {})
        self.assertEqual(payload.to_dict()["notification"]["data"], {})


@override_settings(RABBITMQ_HOST="broker", RABBITMQ_PORT=5672, RABBITMQ_USER="chat", RABBITMQ_PASSWORD="secret")
class PublishTest(SimpleTestCase):
    @patch("event_bus.publisher.pika.BlockingConnection")
    def test_publishes_persistent_message(self, blocking_connection):
        connection = blocking_connection.return_value
        channel = MagicMock()
        connection.channel.return_value = channel

        publish("notifications.exchange", "notifications.push.requested", '{"a": 1}')

        params = blocking_connection.call_args[0][0]
        self.assertEqual(params.host, "broker")
        channel.exchange_declare.assert_called_once_with(
            exchange="notifications.exchange", exchange_type="direct", durable=True,
        )
        kwargs = channel.basic_publish.call_args.kwargs
        self.assertEqual(kwargs["routing_key"], "notifications.push.requested")
        self.assertEqual(kwargs["properties"].delivery_mode, 2)
        connection.close.assert_called_once()

    @patch("event_bus.publisher.pika.BlockingConnection")
    def test_connection_closed_on_failure(self, blocking_connection):
        connection = blocking_connection.return_value
        connection.channel.side_effect = RuntimeError("channel closed")

        with self.assertRaises(RuntimeError):
            publish("x", "y", "{}")
        connection.close.assert_called_once()
