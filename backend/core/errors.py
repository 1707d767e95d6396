"""Error taxonomy shared by the booking, cancellation and payment services.

Every error carries the HTTP status it maps to at the request boundary and
whether the caller may retry the same request.
"""


class ServiceError(Exception):
    status_code = 500
    message = 'Something went wrong.'
    retryable = False

    def __init__(self, message: str | None = None):
        self.message = message or self.message
        super().__init__(self.message)


class NotFound(ServiceError):
    status_code = 404
    message = 'Not found.'


class Forbidden(ServiceError):
    status_code = 403
    message = 'Unauthorized action.'


class Conflict(ServiceError):
    status_code = 409
    message = 'Request conflicts with the current state.'


class Invalid(ServiceError):
    status_code = 400
    message = 'Invalid request.'


class SignatureMismatch(ServiceError):
    status_code = 400
    message = 'Payment verification failed.'


class ProviderUnavailable(ServiceError):
    status_code = 503
    message = 'Payment provider unavailable. Please retry.'
    retryable = True


class PersistenceFailure(ServiceError):
    status_code = 503
    message = 'Database unavailable. Please retry.'
    retryable = True


class DoctorNotFound(NotFound):
    message = 'Doctor not found.'


class PatientNotFound(NotFound):
    message = 'User not found.'


class AppointmentNotFound(NotFound):
    message = 'Appointment not found.'


class OrderNotFound(NotFound):
    message = 'Order not found.'


class ProviderNotFound(NotFound):
    message = 'Unsupported payment provider.'


class DoctorUnavailable(Conflict):
    status_code = 400
    message = 'Doctor not available.'


class SlotUnavailable(Conflict):
    status_code = 400
    message = 'Slot not available.'


class InvalidTransition(Conflict):
    message = 'Invalid appointment state transition.'


class AppointmentCancelled(Conflict):
    status_code = 400
    message = 'Appointment cancelled.'


class AppointmentAlreadyPaid(Conflict):
    status_code = 400
    message = 'Appointment already paid.'


class PaymentDeclined(Invalid):
    message = 'Payment failed.'
