"""
Furanomi Worker — Push Schemas
===============================

What:  Pydantic models for the push wire formats.
Who:   The subscription service (requests to the notifications API) and the
       push bridge (payloads arriving from the push service).

Wire formats:
    GET    /api/notifications/vapid-public-key → {"publicKey": "..."}
    POST   /api/notifications/subscribe        ← {"subscription": {endpoint, keys}}
    DELETE /api/notifications/unsubscribe      ← {"endpoint": "..."}
    push payload                               {title?, body?, icon?, badge?, data?}
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class SubscriptionKeys(BaseModel):
    p256dh: str = Field(description="Client public key, base64")
    auth: str = Field(description="Client auth secret, base64")


class SubscriptionRecord(BaseModel):
    """A browser's push endpoint and encryption keys for one installation."""

    endpoint: str = Field(description="Push service URL for this installation")
    keys: SubscriptionKeys


class VapidPublicKeyResponse(BaseModel):
    public_key: Optional[str] = Field(default=None, alias="publicKey")

    model_config = ConfigDict(populate_by_name=True)


class SubscribeRequest(BaseModel):
    subscription: SubscriptionRecord


class UnsubscribeRequest(BaseModel):
    endpoint: str


class NotificationDescriptor(BaseModel):
    """
    What the worker shows for one push message. Built per event, never stored.

    Unknown payload fields (tag, actions, ...) are kept and handed to the
    platform together with the known ones.
    """

    title: str
    body: str = ""
    icon: Optional[str] = None
    badge: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")

    def options(self) -> Dict[str, Any]:
        """Everything except the title, as passed to show_notification()."""
        return self.model_dump(exclude={"title"}, exclude_none=True)
