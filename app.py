# app.py
import os
from types import SimpleNamespace
from dotenv import load_dotenv
from flask import Flask, Blueprint, current_app, request, jsonify, redirect
from flask_bcrypt import Bcrypt
from werkzeug.exceptions import HTTPException
from models import db
from appUtils import EmailSender, ImageHost, missing_fields, validate_email
from accountService import AccountStore, CredentialVerifier
from otpService import OtpLedger
from appointmentService import AppointmentLedger
from paymentService import PaymentGateway, PaymentReconciler, FLUTTERWAVE_BASE_URL
from errors import FoodMedError, ValidationError, AccountNotFound, UpstreamError, InternalError

load_dotenv()

api = Blueprint("api", __name__)


def _float_or_none(value):
    return float(value) if value else None


def load_config():
    return {
        "SQLALCHEMY_DATABASE_URI": os.getenv("DATABASE_URL", "sqlite:///foodmed.db"),
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
        "SENDGRID_API_KEY": os.getenv("SENDGRID_API_KEY"),
        "MAIL_FROM": os.getenv("MAIL_FROM", os.getenv("EMAIL")),
        "CLOUDINARY_CLOUD_NAME": os.getenv("CLOUDINARY_CLOUD_NAME"),
        "CLOUDINARY_UPLOAD_PRESET": os.getenv("CLOUDINARY_UPLOAD_PRESET", "foodmed_unsigned"),
        "FLW_SECRET_KEY": os.getenv("FLW_SECRET_KEY"),
        "PAYMENT_BASE_URL": os.getenv("PAYMENT_BASE_URL", FLUTTERWAVE_BASE_URL),
        "PAYMENT_CURRENCY": os.getenv("PAYMENT_CURRENCY", "NGN"),
        "PUBLIC_BASE_URL": os.getenv("PUBLIC_BASE_URL", "http://localhost:5223"),
        "FRONTEND_URL": os.getenv("FRONTEND_URL", "http://localhost:5173"),
        "OTP_TTL_SECONDS": int(os.getenv("OTP_TTL_SECONDS", "300")),
        "HTTP_TIMEOUT": _float_or_none(os.getenv("HTTP_TIMEOUT")),
        "BCRYPT_LOG_ROUNDS": int(os.getenv("BCRYPT_LOG_ROUNDS", "12")),
        "PORT": int(os.getenv("PORT", "5223")),
    }


def create_app(config=None, mailer=None, gateway=None, image_host=None):
    """Build the app and wire every service with its collaborators.

    `mailer`, `gateway` and `image_host` default to the SendGrid, Flutterwave and
    Cloudinary clients built from config; tests pass fakes instead.
    """
    app = Flask(__name__)
    app.config.update(load_config())
    if config:
        app.config.update(config)

    db.init_app(app)
    bcrypt = Bcrypt(app)

    cfg = app.config
    mailer = mailer or EmailSender(cfg["SENDGRID_API_KEY"], cfg["MAIL_FROM"])
    gateway = gateway or PaymentGateway(cfg["FLW_SECRET_KEY"], cfg["PAYMENT_BASE_URL"], cfg["HTTP_TIMEOUT"])
    image_host = image_host or ImageHost(
        cfg["CLOUDINARY_CLOUD_NAME"], cfg["CLOUDINARY_UPLOAD_PRESET"], cfg["HTTP_TIMEOUT"]
    )

    store = AccountStore(db.session, bcrypt)
    appointments = AppointmentLedger(db.session, store)
    app.extensions["foodmed"] = SimpleNamespace(
        store=store,
        verifier=CredentialVerifier(store, bcrypt),
        otps=OtpLedger(db.session, store, mailer, app.logger, ttl=cfg["OTP_TTL_SECONDS"]),
        appointments=appointments,
        payments=PaymentReconciler(
            db.session, store, appointments, gateway, mailer, app.logger,
            public_base_url=cfg["PUBLIC_BASE_URL"],
            frontend_url=cfg["FRONTEND_URL"],
            currency=cfg["PAYMENT_CURRENCY"],
        ),
        mailer=mailer,
        image_host=image_host,
    )

    app.register_blueprint(api)

    with app.app_context():
        db.create_all()

    return app


def services():
    return current_app.extensions["foodmed"]


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON body")
    return data


# ---- error handling ----

@api.app_errorhandler(FoodMedError)
def handle_foodmed_error(e):
    if isinstance(e, UpstreamError):
        current_app.logger.error(f"[{request.path}] upstream failure: {e.detail}")
    return jsonify({"error": e.message}), e.status_code

@api.app_errorhandler(HTTPException)
def handle_http_error(e):
    if e.code == 404:
        return jsonify({"error": "Route not found"}), 404
    return jsonify({"error": e.description}), e.code

@api.app_errorhandler(Exception)
def handle_unexpected_error(e):
    db.session.rollback()
    current_app.logger.exception(f"[{request.path}] unhandled error")
    err = InternalError(str(e))
    return jsonify({"error": err.message}), err.status_code


# ---- accounts ----

@api.route("/signup", methods=["POST"])
def signup():
    user = services().store.create_user(_json_body())
    current_app.logger.info(f"[signup] new user {user.id}")
    return jsonify({"message": "Signup successful", "user": user.to_dict()})

@api.route("/login", methods=["POST"])
def login():
    data = _json_body()
    account, role, redirect_hint = services().verifier.verify(data.get("email"), data.get("password"))
    return jsonify({
        "message": "You have logged in successfully",
        **account.to_dict(),
        "role": role,
        "redirect": redirect_hint,
    })

@api.route("/send-otp", methods=["POST"])
def send_otp():
    services().otps.issue(_json_body().get("email"))
    return jsonify({"message": "OTP sent to email"})

@api.route("/verify-otp", methods=["POST"])
def verify_otp():
    data = _json_body()
    services().otps.verify(data.get("email"), data.get("otp"))
    return jsonify({"message": "OTP verified"})

@api.route("/reset-password", methods=["POST"])
def reset_password():
    data = _json_body()
    services().store.reset_password(data.get("email"), data.get("password"), data.get("confirm"))
    return jsonify({"message": "Password reset successful"})

@api.route("/profile-setup", methods=["POST"])
def profile_setup():
    data = _json_body()
    if missing_fields(data, ["email", "profileImage", "bio", "location"]):
        raise ValidationError("Missing required fields")
    if not validate_email(data["email"]):
        raise ValidationError("Invalid email")

    svc = services()
    email = data["email"].strip().lower()
    if not svc.store.find_user_by_email(email):
        raise AccountNotFound("User not found or no update made")
    image_url = svc.image_host.upload(data["profileImage"])
    user = svc.store.update_profile(email, image_url, data["bio"], data["location"])
    return jsonify({
        "message": "Profile updated successfully",
        "profileImage": user.profile_image,
        "bio": user.bio,
    })

@api.route("/user-profile", methods=["GET"])
def user_profile():
    email = request.args.get("email")
    if not email:
        raise ValidationError("Email query parameter is required")
    user = services().store.find_user_by_email(email.strip().lower())
    if not user:
        raise AccountNotFound()
    profile = user.to_dict()
    profile.pop("id")
    profile.pop("role")
    return jsonify(profile)

@api.route("/users", methods=["GET"])
def list_users():
    return jsonify([u.to_dict() for u in services().store.list_users()])


# ---- doctors ----

@api.route("/doctors", methods=["POST"])
def create_doctor():
    svc = services()
    form = request.form.to_dict()
    if not form:
        # JSON clients without an image
        form = request.get_json(silent=True) or {}
    if not isinstance(form, dict):
        raise ValidationError("Invalid request body")

    image_url = ""
    image = request.files.get("image")
    if image and image.filename:
        image_url = svc.image_host.upload(image)

    doctor = svc.store.create_doctor(form, image_url=image_url)
    current_app.logger.info(f"[create_doctor] new doctor {doctor.id}")
    return jsonify({"message": "Doctor created successfully", "id": doctor.id})

@api.route("/doctors", methods=["GET"])
def list_doctors():
    return jsonify([d.to_dict() for d in services().store.list_doctors()])

@api.route("/doctors/<doctor_id>", methods=["PATCH"])
def update_doctor(doctor_id):
    doctor = services().store.update_doctor(doctor_id, _json_body())
    return jsonify({"message": "Doctor updated", "doctor": doctor.to_dict()})


# ---- payments ----

@api.route("/pay", methods=["POST"])
def pay():
    return jsonify(services().payments.initiate(_json_body()))

@api.route("/payment-success", methods=["GET"])
def payment_success():
    # gateway redirect callback: always answers with a redirect to the frontend
    return redirect(services().payments.reconcile(request.args), code=302)


# ---- appointments ----

@api.route("/appointment", methods=["POST"])
def create_appointment():
    ledger = services().appointments
    appointment = ledger.create(_json_body())
    return jsonify(ledger.enrich(appointment)), 201

@api.route("/appointment/doctor/<doctor_id>", methods=["GET"])
def doctor_appointments(doctor_id):
    return jsonify(services().appointments.list_by_doctor(doctor_id))

@api.route("/appointment/patient/<patient_id>", methods=["GET"])
def patient_appointments(patient_id):
    return jsonify(services().appointments.list_by_patient(patient_id))

@api.route("/appointment/<appointment_id>", methods=["PATCH"])
def update_appointment(appointment_id):
    ledger = services().appointments
    appointment = ledger.update(appointment_id, _json_body())
    return jsonify({"message": "Appointment updated", "appointment": appointment.to_dict()})


if __name__ == "__main__":
    application = create_app()
    application.run(port=application.config["PORT"], debug=True)
