"""
Pytest configuration: an app on in-memory SQLite with fake email, payment and
image collaborators, plus helpers to seed accounts.
"""

import pytest

from app import create_app
from models import db, Doctor
from errors import UpstreamError


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail_for = set()

    def send(self, to_email, subject, body):
        if to_email in self.fail_for:
            raise UpstreamError("Failed to send email", detail=f"fake bounce for {to_email}")
        self.sent.append({"to": to_email, "subject": subject, "body": body})
        return 202

    def to(self, email):
        return [m for m in self.sent if m["to"] == email]


class FakeGateway:
    def __init__(self):
        self.initiated = []
        self.verified = []
        self.statuses = {}
        self.tx_refs = {}

    def initiate(self, tx_ref, amount, currency, redirect_url, customer, title="FOODMED consultation"):
        self.initiated.append({
            "tx_ref": tx_ref,
            "amount": amount,
            "currency": currency,
            "redirect_url": redirect_url,
            "customer": customer,
            "title": title,
        })
        return f"https://checkout.test/pay/{tx_ref}"

    def verify(self, transaction_id):
        self.verified.append(transaction_id)
        return {
            "id": transaction_id,
            "status": self.statuses.get(str(transaction_id), "successful"),
            "tx_ref": self.tx_refs.get(str(transaction_id)),
            "amount": 5000,
            "currency": "NGN",
        }


class FakeImageHost:
    def __init__(self):
        self.uploads = []
        self.fail = False

    def upload(self, image):
        if self.fail:
            raise UpstreamError("Image upload failed", detail="fake outage")
        self.uploads.append(image)
        return f"https://images.test/{len(self.uploads)}.png"


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def image_host():
    return FakeImageHost()


@pytest.fixture
def app(mailer, gateway, image_host):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "BCRYPT_LOG_ROUNDS": 4,
            "PUBLIC_BASE_URL": "http://api.test",
            "FRONTEND_URL": "http://frontend.test",
        },
        mailer=mailer,
        gateway=gateway,
        image_host=image_host,
    )
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions["foodmed"]


@pytest.fixture
def make_user(services):
    def _make(email="ada@example.com", password="s3cret!", name="Ada Obi", phone="08012345678"):
        return services.store.create_user({
            "name": name,
            "email": email,
            "password": password,
            "confirm": password,
            "phone": phone,
            "canDonate": True,
            "canRequest": False,
        })
    return _make


@pytest.fixture
def make_doctor(services):
    def _make(email="dr.bello@example.com", patients_count=0, password="doctorpass", **extra):
        doctor = services.store.create_doctor({
            "name": extra.get("name", "Dr. Bello"),
            "email": email,
            "password": password,
            "specialty": extra.get("specialty", "Nutritionist"),
            "phone": extra.get("phone", "08099998888"),
            "fee": extra.get("fee", 5000),
        })
        if patients_count:
            doctor.patients_count = patients_count
            doctor.stars = min(patients_count // 10, 5)
            db.session.commit()
        return doctor
    return _make


@pytest.fixture
def legacy_doctor():
    """A doctor row with no password hash and, by default, no email."""
    def _make(name="Dr. Legacy", email=None):
        doctor = Doctor(name=name, email=email, specialty="General Physician")
        db.session.add(doctor)
        db.session.commit()
        return doctor
    return _make
