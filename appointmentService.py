from models import Appointment, Doctor, User, utcnow
from appUtils import missing_fields
from errors import ValidationError, NotFoundError, DoctorNotFound, AccountNotFound

# fields a PATCH /appointment/<id> may merge; status is any string the caller sends
APPOINTMENT_EDITABLE_FIELDS = ("date", "time", "notes", "status")


def doctor_summary(doctor):
    if not doctor:
        return None
    return {
        "id": doctor.id,
        "name": doctor.name,
        "email": doctor.email,
        "phone": doctor.phone or "",
        "specialty": doctor.specialty,
    }

def patient_summary(patient):
    if not patient:
        return None
    return {
        "id": patient.id,
        "name": patient.name,
        "email": patient.email,
        "phone": patient.phone or "",
    }


class AppointmentLedger:
    def __init__(self, session, store):
        self.session = session
        self.store = store

    def create(self, data):
        if missing_fields(data, ["doctorId", "patientId"]):
            raise ValidationError("doctorId and patientId are required")

        doctor = self.store.get_doctor(data["doctorId"])
        if not doctor:
            raise DoctorNotFound()
        patient = self.store.get_user(data["patientId"])
        if not patient:
            raise AccountNotFound("Patient not found")

        appointment = Appointment(
            doctor_id=doctor.id,
            patient_id=patient.id,
            date=data.get("date") or utcnow().isoformat(),
            time=data.get("time") or None,
            notes=data.get("notes") or "",
            status=data.get("status") or "Confirmed",
        )
        self.session.add(appointment)
        self.session.commit()
        return appointment

    def enrich(self, appointment):
        record = appointment.to_dict()
        record["doctor"] = doctor_summary(self.store.get_doctor(appointment.doctor_id))
        record["patient"] = patient_summary(self.store.get_user(appointment.patient_id))
        return record

    def list_by_doctor(self, doctor_id):
        rows = (
            self.session.query(Appointment, User)
            .outerjoin(User, User.id == Appointment.patient_id)
            .filter(Appointment.doctor_id == doctor_id)
            .order_by(Appointment.created_at.desc())
            .all()
        )
        result = []
        for appointment, patient in rows:
            record = appointment.to_dict()
            record["patient"] = patient_summary(patient)
            result.append(record)
        return result

    def list_by_patient(self, patient_id):
        rows = (
            self.session.query(Appointment, Doctor)
            .outerjoin(Doctor, Doctor.id == Appointment.doctor_id)
            .filter(Appointment.patient_id == patient_id)
            .order_by(Appointment.created_at.desc())
            .all()
        )
        result = []
        for appointment, doctor in rows:
            record = appointment.to_dict()
            record["doctor"] = doctor_summary(doctor)
            result.append(record)
        return result

    def update(self, appointment_id, updates):
        appointment = self.session.get(Appointment, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        for field in APPOINTMENT_EDITABLE_FIELDS:
            if field in updates:
                setattr(appointment, field, updates[field])
        appointment.updated_at = utcnow()
        self.session.commit()
        return appointment
