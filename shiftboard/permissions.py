"""
Role-based permission flags for the board UI.

- coordinator: full access.
- admission: can register patients and edit their basic details
  (name, date of birth, M-number, chief complaint).
- viewer: read-only.

The flags only decide which controls the UI offers; the service does not
check them.
"""
# shiftboard/permissions.py

ROLES = ("coordinator", "admission", "viewer")


def permissions_for(role: str) -> dict:
    """Returns the permission flags for a role; unknown roles get no permissions."""
    coordinator = role == "coordinator"
    registers = coordinator or role == "admission"
    return {
        "can_create_patients": registers,
        "can_edit_patients": registers,
        "can_edit_basic_info": registers,
        "can_edit_clinical_info": coordinator,
        "can_manage_notes": coordinator,
        "can_manage_orders": coordinator,
        "can_export_data": coordinator,
        "can_configure_shift": coordinator,
    }
