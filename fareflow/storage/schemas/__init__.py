from .base_schema import BaseSchema
from .booking_schema import BookingSchema

__all__ = ["BaseSchema", "BookingSchema"]
