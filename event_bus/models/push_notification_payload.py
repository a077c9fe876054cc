import json
from typing import Any, Dict, List, Optional


NOTIFICATION_EXCHANGE: str = "notifications.exchange"
NOTIFICATION_ROUTING_KEY: str = "notifications.push.requested"


class PushNotificationPayload:
    SOURCE_SERVICE_ID: str = "marketchat"
    EVENT_TYPE: str = "notification.requested"
    ANDROID_CHANNEL_ID: str = "chat-messages"

    def __init__(
        self,
        target_user_id: str,
        push_tokens: List[str],
        headings: Dict[str, str],
        contents: Dict[str, str],
        data: Optional[Dict[str, Any]] = None,
        url: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> None:
        """
        A push request for the notification service. ``headings`` and
        ``contents`` are keyed by language code.
        """
        self.target_user_id = target_user_id
        self.push_tokens = push_tokens
        self.headings = headings
        self.contents = contents
        self.data = data or {}
        self.url = url
        self.request_id = request_id

    def to_dict(self) -> Dict[str, Any]:
        notification = {
            "target_user_id": self.target_user_id,
            "push_tokens": self.push_tokens,
            "headings": self.headings,
            "contents": self.contents,
            "data": self.data,
            "android_channel_id": self.ANDROID_CHANNEL_ID,
            "url": self.url,
        }

        meta = {
            "event_type": self.EVENT_TYPE,
            "source_service_id": self.SOURCE_SERVICE_ID,
            "request_id": self.request_id,
        }

        return {"notification": notification, "meta": meta}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())
