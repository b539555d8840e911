from yellowjersey.models.user import User
from yellowjersey.models.product import Product, CanonicalProduct
from yellowjersey.models.product_image import ProductImage, ImageDiscoveryJob
from yellowjersey.models.purchase import Purchase
from yellowjersey.models.offer import Offer, OfferHistory
from yellowjersey.models.support import SupportTicket, TicketMessage, TicketAttachment, TicketHistory
from yellowjersey.models.store import StoreCategory, StoreService
from yellowjersey.models.webhook_event import WebhookEvent
from yellowjersey.models.job_run import JobRun

__all__ = [
    "User",
    "Product",
    "CanonicalProduct",
    "ProductImage",
    "ImageDiscoveryJob",
    "Purchase",
    "Offer",
    "OfferHistory",
    "SupportTicket",
    "TicketMessage",
    "TicketAttachment",
    "TicketHistory",
    "StoreCategory",
    "StoreService",
    "WebhookEvent",
    "JobRun",
]
