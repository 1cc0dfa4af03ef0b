"""
Demo data seeder for MedicX.

Creates one account per clinic role with known credentials, plus a sample
patient and two stocked medicines so every screen has something to show
immediately after a fresh start.

Credentials (printed to stdout on first run):
  Admin    : ummi      / ummi999
  Reception: reception / 4568
  Doctor   : doctor    / 7891
  Pharmacy : pharmacy  / 1235

This seeder is idempotent: it is safe to call on every startup.
"""
from datetime import date

from .models.base import SessionLocal, Base, engine, generate_uuid
from .models.user import User, UserRole
from .models.patient import Patient, PatientCategory
from .models.medicine import Medicine, MedicineCategory
from .core.security import get_password_hash
from .services.clinic_service import ClinicService
from .services.store import SqlAlchemyStore

DEMO_USERS = (
    # (username, password, full name, role)
    ("ummi", "ummi999", "Clinic Administrator", UserRole.ADMIN),
    ("reception", "4568", "Front Desk", UserRole.RECEPTION),
    ("doctor", "7891", "Duty Doctor", UserRole.DOCTOR),
    ("pharmacy", "1235", "Dispensary", UserRole.PHARMACY),
)

DEMO_PATIENT_NAME = "Ayesha Demo"

DEMO_MEDICINES = (
    # (name, category, opening stock, expiry)
    ("Paracetamol 500mg", MedicineCategory.TABLET, 120, date(2027, 6, 30)),
    ("Folic Acid Syrup", MedicineCategory.SYRUP, 8, date(2027, 1, 31)),
)


def seed_demo_data() -> None:
    """Create demo users, patient, and medicines if they do not already exist."""
    # Ensure tables exist (no-op when already created by main.py)
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        admin = _seed_users(db)
        service = ClinicService(SqlAlchemyStore(db))
        _seed_patient(db, service, admin.id)
        _seed_medicines(db, service, admin)
    finally:
        db.close()


# ── helpers ──────────────────────────────────────────────────────────────────

def _seed_users(db) -> User:
    for username, password, full_name, role in DEMO_USERS:
        if db.query(User).filter(User.username == username).first():
            continue
        db.add(
            User(
                id=generate_uuid(),
                username=username,
                hashed_password=get_password_hash(password),
                full_name=full_name,
                role=role,
            )
        )
        db.commit()
        print(f"[seed] Created {role:<9} user: {username} / {password}")
    return db.query(User).filter(User.username == DEMO_USERS[0][0]).first()


def _seed_patient(db, service: ClinicService, created_by: str) -> Patient:
    patient = db.query(Patient).filter(Patient.name == DEMO_PATIENT_NAME).first()
    if not patient:
        patient = service.register_patient(
            {
                "name": DEMO_PATIENT_NAME,
                "age": 12,
                "gender": "Female",
                "phone_number": "03001234567",
                "address": "Demo Street 1",
                "category": PatientCategory.THALASSEMIC,
                "description": "Pre-seeded demo patient for walkthroughs.",
            },
            created_by=created_by,
        )
        print(f"[seed] Created demo patient: {patient.name} (#{patient.patient_id})")
    return patient


def _seed_medicines(db, service: ClinicService, admin: User) -> None:
    for name, category, quantity, expiry in DEMO_MEDICINES:
        if db.query(Medicine).filter(Medicine.name == name).first():
            continue
        view = service.create_medicine(
            name=name,
            category=category,
            quantity=quantity,
            expiry_date=expiry,
            created_by=admin.id,
            user_type=admin.role,
        )
        print(f"[seed] Created demo medicine: {view.name} ({view.total_quantity} in stock)")
