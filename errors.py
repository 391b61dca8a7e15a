# errors.py
# error hierarchy shared by the services; app.py turns these into JSON responses


class FoodMedError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(FoodMedError):
    status_code = 400
    default_message = "Invalid input"


class MissingParameters(ValidationError):
    default_message = "Missing required parameters"


class DoctorExists(ValidationError):
    default_message = "Doctor already exists"


class ConflictError(FoodMedError):
    status_code = 409
    default_message = "User already exists"


class NotFoundError(FoodMedError):
    status_code = 404
    default_message = "Not found"


class AccountNotFound(NotFoundError):
    default_message = "User not found"


class DoctorNotFound(NotFoundError):
    default_message = "Doctor not found"


class AuthError(FoodMedError):
    status_code = 401
    default_message = "Unauthorized"


class InvalidCredentials(AuthError):
    default_message = "Invalid credentials"


class InvalidOTP(AuthError):
    status_code = 400
    default_message = "Invalid OTP"


class OTPExpired(AuthError):
    status_code = 400
    default_message = "OTP expired"


class UpstreamError(FoodMedError):
    """A provider (email, image host, payment gateway) failed.

    `detail` is for the logs only; callers get the generic message.
    """
    status_code = 500
    default_message = "Upstream service failure"

    def __init__(self, message=None, detail=None):
        super().__init__(message)
        self.detail = detail


class PaymentNotVerified(UpstreamError):
    default_message = "Payment not verified"


class InternalError(FoodMedError):
    pass
