"""Request handling and delivery services."""

from vis_render.services.delivery import InlineDelivery, StoredDelivery, build_delivery
from vis_render.services.render_service import RenderOutcome, RenderService

__all__ = ["InlineDelivery", "RenderOutcome", "RenderService", "StoredDelivery", "build_delivery"]
