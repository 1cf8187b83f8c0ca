from tourbook.models.user import User
from tourbook.models.tour import Tour
from tourbook.models.booking import Booking

__all__ = ["User", "Tour", "Booking"]
