"""Delivery strategies turning PNG bytes into a response result."""

from __future__ import annotations

import base64
from typing import Protocol

from vis_render.config import DeliveryMode, Settings
from vis_render.schemas import DeliveryResult, InlineEncoded, StoredLink
from vis_render.store import FileArtifactStore

PNG_DATA_URI_PREFIX = "data:image/png;base64,"


def encode_data_uri(buffer: bytes) -> str:
    return PNG_DATA_URI_PREFIX + base64.b64encode(buffer).decode("ascii")


class DeliveryStrategy(Protocol):
    mode: DeliveryMode

    async def deliver(self, buffer: bytes) -> DeliveryResult:
        ...


class InlineDelivery:
    """Embed the image in the response as a base64 data URI."""

    mode = DeliveryMode.INLINE

    async def deliver(self, buffer: bytes) -> DeliveryResult:
        return InlineEncoded(data_uri=encode_data_uri(buffer))


class StoredDelivery:
    """Persist the image and answer with a link to it."""

    mode = DeliveryMode.STORED

    def __init__(self, store: FileArtifactStore) -> None:
        self._store = store

    async def deliver(self, buffer: bytes) -> DeliveryResult:
        return StoredLink(url=await self._store.persist(buffer))


def build_delivery(settings: Settings, store: FileArtifactStore | None = None) -> DeliveryStrategy:
    """Pick the strategy for the process-wide delivery mode."""
    if settings.delivery_mode is DeliveryMode.STORED:
        return StoredDelivery(store or FileArtifactStore.from_settings(settings))
    return InlineDelivery()
