from .availability import Availability, BookingConflicts
from .car_service import CarService
from .insurance_service import InsuranceService
from .rental_service import RentalService
from .reservation_service import ReservationService
from .user_service import UserService

__all__ = [
    "Availability",
    "BookingConflicts",
    "CarService",
    "InsuranceService",
    "RentalService",
    "ReservationService",
    "UserService",
]
