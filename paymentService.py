import uuid
from urllib.parse import urlencode

import requests
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from models import Payment, utcnow
from appUtils import validate_email, missing_fields, doctor_payment_email, patient_payment_email
from errors import (
    FoodMedError, ValidationError, MissingParameters, DoctorNotFound, UpstreamError, PaymentNotVerified
)

FLUTTERWAVE_BASE_URL = "https://api.flutterwave.com/v3"


class PaymentGateway:
    """Flutterwave-style REST client, authenticated with a bearer secret key."""

    def __init__(self, secret_key, base_url=FLUTTERWAVE_BASE_URL, timeout=None):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def headers(self):
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def initiate(self, tx_ref, amount, currency, redirect_url, customer, title="FOODMED consultation"):
        """Create a hosted payment and return the link the patient is sent to."""
        body = {
            "tx_ref": tx_ref,
            "amount": amount,
            "currency": currency,
            "redirect_url": redirect_url,
            "customer": customer,
            "customizations": {"title": title},
        }
        try:
            resp = requests.post(f"{self.base_url}/payments", json=body, headers=self.headers, timeout=self.timeout)
            payload = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise UpstreamError("Payment initiation failed", detail=f"gateway: {e}") from e

        link = (payload.get("data") or {}).get("link")
        if not resp.ok or payload.get("status") != "success" or not link:
            raise UpstreamError(
                "Payment initiation failed",
                detail=f"gateway HTTP {resp.status_code}: {payload.get('message')}"
            )
        return link

    def verify(self, transaction_id):
        """Return the gateway's transaction record; its "status" is "successful" once paid."""
        url = f"{self.base_url}/transactions/{transaction_id}/verify"
        try:
            resp = requests.get(url, headers=self.headers, timeout=self.timeout)
            payload = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise UpstreamError("Payment verification failed", detail=f"gateway: {e}") from e

        if not resp.ok:
            raise PaymentNotVerified(detail=f"gateway HTTP {resp.status_code}: {payload.get('message')}")
        return payload.get("data") or {}


class PaymentReconciler:
    """Turns a payment gateway redirect into its side effects.

    initiate() hands the patient a hosted payment link. When the gateway redirects
    back, reconcile() verifies the transaction, counts the patient against the
    doctor's stats, books a Confirmed appointment, emails both parties and answers
    with a redirect to the frontend. Nothing is compensated if a later step fails;
    booking and email failures are only logged. A transaction is applied once:
    the payments table remembers reconciled references.
    """

    def __init__(self, session, store, appointments, gateway, mailer, logger,
                 public_base_url, frontend_url, currency="NGN"):
        self.session = session
        self.store = store
        self.appointments = appointments
        self.gateway = gateway
        self.mailer = mailer
        self.logger = logger
        self.public_base_url = public_base_url.rstrip("/")
        self.frontend_url = frontend_url.rstrip("/")
        self.currency = currency

    def initiate(self, payload):
        missing = missing_fields(payload, ["amount", "email", "doctorId"])
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        try:
            amount = float(payload["amount"])
        except (TypeError, ValueError):
            raise ValidationError("Invalid amount")
        if amount <= 0:
            raise ValidationError("Invalid amount")
        if not validate_email(payload["email"]):
            raise ValidationError("Invalid email")

        doctor = self.store.get_doctor(payload["doctorId"])
        if not doctor:
            raise DoctorNotFound()

        email = payload["email"].strip().lower()
        currency = payload.get("currency") or self.currency
        tx_ref = f"foodmed-{uuid.uuid4().hex}"
        callback = f"{self.public_base_url}/payment-success?" + urlencode(
            {"doctorId": doctor.id, "patientEmail": email}
        )
        link = self.gateway.initiate(
            tx_ref=tx_ref,
            amount=amount,
            currency=currency,
            redirect_url=callback,
            customer={
                "email": email,
                "name": payload.get("name") or "",
                "phonenumber": payload.get("phone") or "",
            },
            title=f"Consultation with {doctor.name}",
        )

        self.session.add(Payment(
            tx_ref=tx_ref,
            doctor_id=doctor.id,
            patient_email=email,
            amount=amount,
            currency=currency,
            status="pending",
        ))
        self.session.commit()
        self.logger.info(f"[initiate_payment] {tx_ref} created for doctor {doctor.id}")
        return {"link": link, "tx_ref": tx_ref}

    def reconcile(self, params):
        """Run the callback workflow and return the frontend URL to redirect to."""
        transaction_id = params.get("transaction_id") or params.get("transactionId")
        doctor_id = params.get("doctorId")
        patient_email = (params.get("patientEmail") or "").strip().lower()

        try:
            if not transaction_id or not doctor_id or not patient_email:
                raise MissingParameters()

            verified = self.gateway.verify(transaction_id)
            if verified.get("status") != "successful":
                raise PaymentNotVerified(
                    detail=f"gateway status {verified.get('status')!r} for transaction {transaction_id}"
                )

            doctor = self.store.get_doctor(doctor_id)
            if not doctor or not doctor.email:
                raise DoctorNotFound()

            tx_ref = verified.get("tx_ref") or params.get("tx_ref") or f"txn-{transaction_id}"
            self._check_recorded(tx_ref, doctor.id, patient_email)
            if self._claim(tx_ref, str(transaction_id), doctor.id, patient_email, verified):
                doctor = self.store.record_patient(doctor.id)
                self.logger.info(
                    f"[reconcile] {tx_ref}: doctor {doctor.id} now has "
                    f"{doctor.patients_count} patients, {doctor.stars} stars"
                )
                self._book(doctor, patient_email, tx_ref)
                self._notify(doctor, patient_email, tx_ref, verified.get("amount"))
            else:
                self.logger.warning(f"[reconcile] {tx_ref} already reconciled, side effects skipped")
        except Exception as e:
            self.session.rollback()
            detail = getattr(e, "detail", None) or str(e)
            self.logger.error(f"[reconcile] transaction {transaction_id} failed: {detail}")
            reason = e.message if isinstance(e, FoodMedError) else "Payment processing failed"
            return self._frontend("payment-failed", doctorId=doctor_id or "",
                                  patientEmail=patient_email, reason=reason)

        return self._frontend("payment-success", transaction_id=transaction_id, tx_ref=tx_ref)

    def _check_recorded(self, tx_ref, doctor_id, patient_email):
        """The callback must credit the doctor and patient that /pay recorded for this tx_ref."""
        payment = self.session.query(Payment).filter_by(tx_ref=tx_ref).first()
        if payment and (payment.doctor_id != doctor_id or payment.patient_email != patient_email):
            raise PaymentNotVerified(
                "Payment details do not match",
                detail=f"{tx_ref} was recorded for doctor {payment.doctor_id} and {payment.patient_email}",
            )

    def _claim(self, tx_ref, transaction_id, doctor_id, patient_email, verified):
        """Mark the payment successful; False when it was reconciled before."""
        try:
            result = self.session.execute(
                update(Payment)
                .where(Payment.tx_ref == tx_ref, Payment.status != "successful")
                .values(status="successful", transaction_id=transaction_id, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                self.session.commit()
                return True

            if self.session.query(Payment).filter_by(tx_ref=tx_ref).first():
                return False

            # paid without going through /pay first
            self.session.add(Payment(
                tx_ref=tx_ref,
                transaction_id=transaction_id,
                doctor_id=doctor_id,
                patient_email=patient_email,
                amount=float(verified.get("amount") or 0),
                currency=verified.get("currency") or self.currency,
                status="successful",
            ))
            self.session.commit()
            return True
        except IntegrityError:
            self.session.rollback()
            return False

    def _book(self, doctor, patient_email, tx_ref):
        try:
            patient = self.store.find_user_by_email(patient_email)
            if not patient:
                self.logger.warning(f"[reconcile] no patient account for {patient_email}, appointment not created")
                return None
            appointment = self.appointments.create({
                "doctorId": doctor.id,
                "patientId": patient.id,
                "status": "Confirmed",
                "notes": f"Payment confirmed. Transaction ref: {tx_ref}",
            })
            self.logger.info(f"[reconcile] appointment {appointment.id} created for {patient_email}")
            return appointment
        except Exception as e:
            self.session.rollback()
            self.logger.error(f"[reconcile] appointment creation failed for {tx_ref}: {e}")
            return None

    def _notify(self, doctor, patient_email, tx_ref, amount):
        messages = [
            (doctor.email, doctor_payment_email(doctor, patient_email, tx_ref, amount)),
            (patient_email, patient_payment_email(doctor, tx_ref, amount)),
        ]
        for to_email, (subject, body) in messages:
            try:
                self.mailer.send(to_email, subject, body)
            except Exception as e:
                detail = getattr(e, "detail", None) or str(e)
                self.logger.error(f"[reconcile] email to {to_email} failed: {detail}")

    def _frontend(self, page, **params):
        return f"{self.frontend_url}/{page}?{urlencode(params)}"
