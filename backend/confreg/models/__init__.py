from .auth import User, SessionToken
from .registrations import Registration, Counter
from .payments import Payment
from .attendance import Attendance, AttendanceScan
from .accommodation import Accommodation, AccommodationBooking

__all__ = [
    'User', 'SessionToken',
    'Registration', 'Counter',
    'Payment',
    'Attendance', 'AttendanceScan',
    'Accommodation', 'AccommodationBooking',
]
