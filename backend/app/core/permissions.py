"""
Role-based permission matrix for MedicX.
Defines what each clinic role is allowed to do in the system.
"""
from ..models.user import UserRole

# Permission constants
PERM_REGISTER_PATIENTS = "register_patients"
PERM_VIEW_PATIENTS = "view_patients"
PERM_CREATE_RECEPTION_REPORTS = "create_reception_reports"
PERM_CREATE_DOCTOR_REPORTS = "create_doctor_reports"
PERM_VIEW_REPORTS = "view_reports"
PERM_VIEW_MEDICINE_USAGE = "view_medicine_usage"
PERM_DISPENSE_MEDICINE = "dispense_medicine"
PERM_MANAGE_STOCK = "manage_stock"
PERM_VIEW_MEDICINES = "view_medicines"
PERM_MANAGE_USERS = "manage_users"
PERM_VIEW_AUDIT_LOGS = "view_audit_logs"

# Role permission matrix
ROLE_PERMISSIONS: dict = {
    UserRole.RECEPTION: {
        PERM_REGISTER_PATIENTS,
        PERM_VIEW_PATIENTS,
        PERM_CREATE_RECEPTION_REPORTS,
        PERM_VIEW_REPORTS,
    },
    UserRole.DOCTOR: {
        PERM_VIEW_PATIENTS,
        PERM_CREATE_DOCTOR_REPORTS,
        PERM_VIEW_REPORTS,
        PERM_VIEW_MEDICINE_USAGE,
        PERM_DISPENSE_MEDICINE,
        PERM_VIEW_MEDICINES,
    },
    UserRole.PHARMACY: {
        PERM_VIEW_MEDICINE_USAGE,
        PERM_DISPENSE_MEDICINE,
        PERM_MANAGE_STOCK,
        PERM_VIEW_MEDICINES,
        # Pharmacy does NOT see patient records or clinical reports
    },
    UserRole.ADMIN: {
        PERM_REGISTER_PATIENTS,
        PERM_VIEW_PATIENTS,
        PERM_CREATE_RECEPTION_REPORTS,
        PERM_CREATE_DOCTOR_REPORTS,
        PERM_VIEW_REPORTS,
        PERM_VIEW_MEDICINE_USAGE,
        PERM_DISPENSE_MEDICINE,
        PERM_MANAGE_STOCK,
        PERM_VIEW_MEDICINES,
        PERM_MANAGE_USERS,
        PERM_VIEW_AUDIT_LOGS,
    },
}


def has_permission(role: str, permission: str) -> bool:
    """Check if a role has a specific permission."""
    return permission in ROLE_PERMISSIONS.get(role, set())
