from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError

from models import User, Doctor
from appUtils import validate_email, text_value, missing_fields, to_bool
from errors import (
    ValidationError, ConflictError, DoctorExists, AccountNotFound, DoctorNotFound, InvalidCredentials
)

MAX_STARS = 5
PATIENTS_PER_STAR = 10

# fields PATCH /doctors/<id> may touch; stats, role and credentials stay out
DOCTOR_EDITABLE_FIELDS = {
    "name": "name",
    "phone": "phone",
    "specialty": "specialty",
    "overview": "overview",
    "fee": "fee",
    "available": "available",
    "imageUrl": "image_url",
}

REDIRECTS = {
    "user": "landing-page",
    "doctor": "doctor-dashboard",
}


def is_secret(value):
    return isinstance(value, str) and value != ""


def compute_stars(patients_count):
    return min(patients_count // PATIENTS_PER_STAR, MAX_STARS)


class AccountStore:
    """Users and doctors, plus the doctor aggregate stats."""

    def __init__(self, session, hasher):
        self.session = session
        self.hasher = hasher

    def hash_password(self, password):
        return self.hasher.generate_password_hash(password).decode("utf-8")

    # ---- lookups ----
    def find_user_by_email(self, email):
        return self.session.query(User).filter_by(email=email).first()

    def find_doctor_by_email(self, email):
        return self.session.query(Doctor).filter_by(email=email).first()

    def find_by_email(self, email):
        """User first, then doctor, None when neither owns the email."""
        return self.find_user_by_email(email) or self.find_doctor_by_email(email)

    def get_user(self, user_id):
        return self.session.get(User, user_id)

    def get_doctor(self, doctor_id):
        return self.session.get(Doctor, doctor_id)

    def list_users(self):
        return self.session.query(User).order_by(User.created_at).all()

    def list_doctors(self):
        return self.session.query(Doctor).order_by(Doctor.created_at).all()

    # ---- writes ----
    def create_user(self, data):
        # name and phone are free text; only the email has a required shape
        name, phone = text_value(data.get("name")), text_value(data.get("phone"))
        password, confirm = data.get("password"), data.get("confirm")
        if missing_fields(data, ["canDonate", "canRequest"]) or not name or not phone:
            raise ValidationError("Invalid input")
        if not is_secret(password) or password != confirm or not validate_email(data.get("email")):
            raise ValidationError("Invalid input")

        email = data["email"].strip().lower()
        if self.find_by_email(email):
            raise ConflictError("User already exists")

        user = User(
            name=name,
            email=email,
            password_hash=self.hash_password(password),
            phone=phone,
            can_donate=to_bool(data["canDonate"]),
            can_request=to_bool(data["canRequest"]),
        )
        self._insert(user, ConflictError("User already exists"))
        return user

    def create_doctor(self, data, image_url=""):
        name, specialty = text_value(data.get("name")), text_value(data.get("specialty"))
        if not name or not specialty or not is_secret(data.get("password")) or not data.get("email"):
            raise ValidationError("Missing required fields")
        if not validate_email(data["email"]):
            raise ValidationError("Invalid email")

        email = data["email"].strip().lower()
        if self.find_by_email(email):
            raise DoctorExists()

        try:
            fee = float(data.get("fee") or 0)
        except (TypeError, ValueError):
            raise ValidationError("Invalid fee")

        doctor = Doctor(
            name=name,
            email=email,
            password_hash=self.hash_password(data["password"]),
            phone=text_value(data.get("phone")),
            specialty=specialty,
            overview=text_value(data.get("overview")),
            fee=fee,
            image_url=image_url or "",
            patients_count=0,
            stars=0,
        )
        self._insert(doctor, DoctorExists())
        return doctor

    def _insert(self, account, conflict):
        # the unique constraint catches signups that raced past the existence check
        self.session.add(account)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise conflict

    def update_doctor(self, doctor_id, updates):
        doctor = self.get_doctor(doctor_id)
        if not doctor:
            raise DoctorNotFound()

        for key, attr in DOCTOR_EDITABLE_FIELDS.items():
            if key not in updates:
                continue
            value = updates[key]
            if key == "available":
                value = to_bool(value)
            elif key == "fee":
                try:
                    value = float(value)
                except (TypeError, ValueError):
                    raise ValidationError("Invalid fee")
            setattr(doctor, attr, value)
        self.session.commit()
        return doctor

    def update_profile(self, email, image_url, bio, location):
        user = self.find_user_by_email(email)
        if not user:
            raise AccountNotFound("User not found or no update made")
        user.profile_image = image_url
        user.bio = bio
        user.location = location
        self.session.commit()
        return user

    def reset_password(self, email, password, confirm):
        if not text_value(email) or not is_secret(password):
            raise ValidationError("Invalid input")
        if password != confirm:
            raise ValidationError("Passwords do not match")
        account = self.find_by_email(text_value(email).lower())
        if not account:
            raise AccountNotFound()
        account.password_hash = self.hash_password(password)
        self.session.commit()
        return account

    def record_patient(self, doctor_id):
        """Count one more patient for the doctor and re-derive the star rating.

        Both columns are written by a single UPDATE, so concurrent callers cannot
        lose a star recompute between the increment and the re-read.
        """
        new_count = Doctor.patients_count + 1
        stmt = (
            update(Doctor)
            .where(Doctor.id == doctor_id)
            .values(
                patients_count=new_count,
                stars=case(
                    (new_count >= MAX_STARS * PATIENTS_PER_STAR, MAX_STARS),
                    else_=new_count // PATIENTS_PER_STAR,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount == 0:
            self.session.rollback()
            raise DoctorNotFound()
        self.session.commit()
        return self.get_doctor(doctor_id)


class CredentialVerifier:
    def __init__(self, store, hasher):
        self.store = store
        self.hasher = hasher

    def verify(self, email, password):
        """Returns (account, role, redirect) or raises InvalidCredentials.

        Unknown email and wrong password fail the same way.
        """
        email = text_value(email).lower()
        if not email or not is_secret(password):
            raise InvalidCredentials()
        account = self.store.find_by_email(email)
        if not account or not account.password_hash:
            raise InvalidCredentials()
        if not self.hasher.check_password_hash(account.password_hash, password):
            raise InvalidCredentials()
        return account, account.role, REDIRECTS.get(account.role, "landing-page")
