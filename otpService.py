import time

from models import OtpRecord
from appUtils import text_value, generate_otp, otp_email_body, OTP_EMAIL_SUBJECT
from errors import AccountNotFound, InvalidOTP, OTPExpired, ValidationError

DEFAULT_OTP_TTL = 5 * 60


class OtpLedger:
    """One live code per email, used to re-verify identity before a password reset.

    A successful verify does not consume the code; it stays valid until it
    expires or a new one is issued for the same email.
    """

    def __init__(self, session, store, mailer, logger, ttl=DEFAULT_OTP_TTL, clock=time.time):
        self.session = session
        self.store = store
        self.mailer = mailer
        self.logger = logger
        self.ttl = ttl
        self.clock = clock

    def issue(self, email):
        email = text_value(email).lower()
        if not email:
            raise ValidationError("Email is required")
        if not self.store.find_by_email(email):
            raise AccountNotFound()

        otp = generate_otp()
        # merge on the primary key overwrites any earlier code for this email
        self.session.merge(OtpRecord(email=email, code=otp, created_at=self.clock()))
        self.session.commit()
        self.logger.debug(f"[issue_otp] OTP stored for {email}")

        # the code counts as issued even when delivery fails
        self.mailer.send(email, OTP_EMAIL_SUBJECT, otp_email_body(otp, self.ttl // 60))
        return otp

    def verify(self, email, code):
        email = text_value(email).lower()
        if not email or not text_value(code):
            raise InvalidOTP()
        record = self.session.get(OtpRecord, email)
        if not record or record.code != text_value(code):
            raise InvalidOTP()
        if self.clock() - record.created_at > self.ttl:
            raise OTPExpired()
        return True
