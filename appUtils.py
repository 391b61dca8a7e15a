import re
import secrets
import requests
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from errors import UpstreamError

CLOUDINARY_UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/image/upload"


def validate_email(email):
    return isinstance(email, str) and bool(re.fullmatch(r"[^@\s]+@[^@\s]+\.[^@\s]+", email.strip()))

def text_value(value):
    """Stripped text of a JSON/form field; "" for null, objects, lists and booleans."""
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    return value.strip() if isinstance(value, str) else ""

def missing_fields(data, fields):
    """Names from `fields` that are absent (None or empty string) in `data`."""
    return [f for f in fields if data.get(f) is None or data.get(f) == ""]

def to_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")

def generate_otp():
    return str(secrets.randbelow(900000) + 100000)


class EmailSender:
    """Plain-text mail through SendGrid."""

    def __init__(self, api_key, from_email):
        self.api_key = api_key
        self.from_email = from_email

    def send(self, to_email, subject, body):
        message = Mail(
            from_email=self.from_email,  # must be verified in SendGrid
            to_emails=to_email,
            subject=subject,
            plain_text_content=body
        )
        try:
            response = SendGridAPIClient(self.api_key).send(message)
        except Exception as e:
            raise UpstreamError("Failed to send email", detail=f"sendgrid: {e}") from e
        return response.status_code


class ImageHost:
    """Unsigned uploads to Cloudinary, returning the hosted secure URL."""

    def __init__(self, cloud_name, upload_preset, timeout=None):
        self.url = CLOUDINARY_UPLOAD_URL.format(cloud_name=cloud_name)
        self.upload_preset = upload_preset
        self.timeout = timeout

    def upload(self, image):
        # `image` is a base64 data URI (JSON clients) or a werkzeug FileStorage (multipart)
        data = {"upload_preset": self.upload_preset}
        files = None
        if isinstance(image, str):
            data["file"] = image
        else:
            files = {"file": (image.filename, image.stream, image.mimetype)}

        try:
            resp = requests.post(self.url, data=data, files=files, timeout=self.timeout)
            payload = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise UpstreamError("Image upload failed", detail=f"cloudinary: {e}") from e

        secure_url = payload.get("secure_url")
        if not secure_url:
            raise UpstreamError("Image upload failed", detail=f"cloudinary: {payload.get('error')}")
        return secure_url


OTP_EMAIL_SUBJECT = "Your FOODMED OTP Code"

def otp_email_body(otp, ttl_minutes):
    return (
        f"Your OTP code is {otp}\n\n"
        f"It expires in {ttl_minutes} minutes. If you did not ask to reset your password, ignore this email."
    )

def doctor_payment_email(doctor, patient_email, transaction_ref, amount=None):
    amount_line = f"Amount: {amount}\n" if amount is not None else ""
    return (
        "New paid appointment - FOODMED",
        f"Hello {doctor.name},\n\n"
        f"A patient ({patient_email}) has paid for a consultation with you.\n"
        f"{amount_line}"
        f"Transaction reference: {transaction_ref}\n\n"
        "The appointment has been added to your dashboard.\n\n"
        "FOODMED Team"
    )

def patient_payment_email(doctor, transaction_ref, amount=None):
    amount_line = f"Amount: {amount}\n" if amount is not None else ""
    return (
        "Payment confirmed - FOODMED",
        f"Your payment for a consultation with {doctor.name} ({doctor.specialty}) was successful.\n"
        f"{amount_line}"
        f"Transaction reference: {transaction_ref}\n\n"
        "Your appointment is confirmed. The doctor will reach out with the details.\n\n"
        "Wishing you good health!\n"
        "FOODMED Team"
    )
