"""
Tests for direct appointment creation, listing and merge updates.
"""
import pytest

from models import db, Appointment
from errors import ValidationError, DoctorNotFound, AccountNotFound, NotFoundError


@pytest.fixture
def pair(make_doctor, make_user):
    return make_doctor(email="dr@example.com"), make_user()


class TestAppointmentLedger:

    def test_create_defaults(self, services, pair):
        doctor, patient = pair
        appointment = services.appointments.create({"doctorId": doctor.id, "patientId": patient.id})

        assert appointment.status == "Confirmed"
        assert appointment.notes == ""
        assert appointment.time is None
        assert appointment.date

    def test_create_requires_references(self, services):
        with pytest.raises(ValidationError):
            services.appointments.create({"doctorId": "x"})

    def test_create_checks_references_exist(self, services, pair):
        doctor, patient = pair
        with pytest.raises(DoctorNotFound):
            services.appointments.create({"doctorId": "missing", "patientId": patient.id})
        with pytest.raises(AccountNotFound):
            services.appointments.create({"doctorId": doctor.id, "patientId": "missing"})

    def test_update_accepts_any_status(self, services, pair):
        doctor, patient = pair
        appointment = services.appointments.create({"doctorId": doctor.id, "patientId": patient.id})

        updated = services.appointments.update(appointment.id, {"status": "whatever-the-caller-wants"})
        assert updated.status == "whatever-the-caller-wants"

    def test_update_ignores_references(self, services, pair, make_doctor):
        doctor, patient = pair
        other = make_doctor(email="other@example.com")
        appointment = services.appointments.create({"doctorId": doctor.id, "patientId": patient.id})

        updated = services.appointments.update(appointment.id, {"doctorId": other.id, "notes": "bring results"})
        assert updated.doctor_id == doctor.id
        assert updated.notes == "bring results"

    def test_update_unknown(self, services):
        with pytest.raises(NotFoundError):
            services.appointments.update("missing", {"status": "Cancelled"})


class TestAppointmentEndpoints:

    def test_create_returns_enriched_record(self, client, pair):
        doctor, patient = pair
        resp = client.post("/appointment", json={
            "doctorId": doctor.id,
            "patientId": patient.id,
            "date": "2026-11-02",
            "time": "10:00",
            "notes": "first visit",
            "status": "pending",
        })

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["status"] == "pending"
        assert body["doctor"]["name"] == "Dr. Bello"
        assert body["patient"]["email"] == "ada@example.com"

    def test_create_missing_reference(self, client):
        resp = client.post("/appointment", json={"doctorId": "x"})

        assert resp.status_code == 400

    def test_list_by_doctor_shows_patient_contact(self, client, services, pair):
        doctor, patient = pair
        services.appointments.create({"doctorId": doctor.id, "patientId": patient.id})
        resp = client.get(f"/appointment/doctor/{doctor.id}")

        assert resp.status_code == 200
        rows = resp.get_json()
        assert len(rows) == 1
        assert rows[0]["patient"] == {
            "id": patient.id, "name": "Ada Obi", "email": "ada@example.com", "phone": "08012345678"
        }

    def test_list_by_patient_shows_doctor_contact(self, client, services, pair):
        doctor, patient = pair
        services.appointments.create({"doctorId": doctor.id, "patientId": patient.id})
        rows = client.get(f"/appointment/patient/{patient.id}").get_json()

        assert len(rows) == 1
        assert rows[0]["doctor"]["specialty"] == "Nutritionist"
        assert rows[0]["doctor"]["email"] == "dr@example.com"

    def test_lists_are_empty_for_unknown_ids(self, client):
        assert client.get("/appointment/doctor/nobody").get_json() == []
        assert client.get("/appointment/patient/nobody").get_json() == []

    def test_patch_merges_fields(self, client, services, pair):
        doctor, patient = pair
        appointment = services.appointments.create({"doctorId": doctor.id, "patientId": patient.id})
        resp = client.patch(f"/appointment/{appointment.id}", json={"status": "Cancelled", "time": "14:00"})

        assert resp.status_code == 200
        body = resp.get_json()["appointment"]
        assert body["status"] == "Cancelled"
        assert body["time"] == "14:00"
        assert db.session.get(Appointment, appointment.id).status == "Cancelled"

    def test_patch_unknown(self, client):
        resp = client.patch("/appointment/missing", json={"status": "Cancelled"})

        assert resp.status_code == 404
