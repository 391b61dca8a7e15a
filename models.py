# models.py
from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy
import uuid

db = SQLAlchemy()


def new_id():
    return str(uuid.uuid4())


def utcnow():
    return datetime.now(timezone.utc)


# database model for USERS table
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    role = db.Column(db.String(20), nullable=False, default="user")
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(20), nullable=False)
    profile_image = db.Column(db.String(500), default="")
    food_preference = db.Column(db.String(120), default="")
    bio = db.Column(db.Text, default="")
    location = db.Column(db.String(255), default="")
    can_donate = db.Column(db.Boolean, default=False)
    can_request = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "role": self.role,
            "name": self.name,
            "email": self.email,
            "phone": self.phone or "",
            "profileImage": self.profile_image or "",
            "foodPreference": self.food_preference or "",
            "bio": self.bio or "",
            "location": self.location or "",
            "canDonate": bool(self.can_donate),
            "canRequest": bool(self.can_request),
        }


# database model for DOCTORS table
class Doctor(db.Model):
    __tablename__ = "doctors"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    role = db.Column(db.String(20), nullable=False, default="doctor")
    name = db.Column(db.String(120), nullable=False)
    # legacy rows may lack an email; they cannot receive payment notifications
    email = db.Column(db.String(255), unique=True, nullable=True)
    password_hash = db.Column(db.String(128), nullable=True)
    phone = db.Column(db.String(20), default="")
    specialty = db.Column(db.String(120), nullable=False)
    overview = db.Column(db.Text, default="")
    fee = db.Column(db.Float, default=0)
    image_url = db.Column(db.String(500), default="")
    available = db.Column(db.Boolean, default=True)
    patients_count = db.Column(db.Integer, nullable=False, default=0)
    stars = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "role": self.role,
            "name": self.name,
            "email": self.email,
            "phone": self.phone or "",
            "specialty": self.specialty,
            "overview": self.overview or "",
            "fee": self.fee,
            "imageUrl": self.image_url or "",
            "available": bool(self.available),
            "patientsCount": self.patients_count,
            "stars": self.stars,
        }


# one live code per email, overwritten on every issue
class OtpRecord(db.Model):
    __tablename__ = "otps"

    email = db.Column(db.String(255), primary_key=True)
    code = db.Column(db.String(6), nullable=False)
    created_at = db.Column(db.Float, nullable=False)


# database model for APPOINTMENTS table
class Appointment(db.Model):
    __tablename__ = "appointments"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    doctor_id = db.Column(db.String(36), db.ForeignKey("doctors.id"), nullable=False)
    patient_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False)
    date = db.Column(db.String(64), nullable=False, default=lambda: utcnow().isoformat())
    time = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, default="")
    status = db.Column(db.String(50), nullable=False, default="Confirmed")
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "doctorId": self.doctor_id,
            "patientId": self.patient_id,
            "date": self.date,
            "time": self.time,
            "notes": self.notes or "",
            "status": self.status,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


# database model for PAYMENTS table, keyed by our own tx_ref
class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    tx_ref = db.Column(db.String(64), unique=True, nullable=False)
    transaction_id = db.Column(db.String(64), unique=True, nullable=True)
    doctor_id = db.Column(db.String(36), nullable=False)
    patient_email = db.Column(db.String(255), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(8), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="pending")
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow)
