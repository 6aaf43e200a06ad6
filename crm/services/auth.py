"""
Mock authentication and permissions

Login matches staff by email only (passwords are not checked) and
registration creates a staff record. Section access is a fixed table per
role. No credentials are stored.
"""

import logging
from typing import Any, Dict, FrozenSet, Optional

from crm.models.domain import Role, Staff
from crm.services.deferred import DeferredAction, Scheduler
from crm.utils.config import settings
from crm.utils.exceptions import AuthenticationError, ValidationError
from crm.utils.store import EntityStore

logger = logging.getLogger(__name__)

DEFAULT_PHONE = "555-000-0000"

PROFILE_FIELDS = frozenset({"name", "email", "phone"})

PROFILE_SECTION = "profile"

SECTIONS: FrozenSet[str] = frozenset({
    "dashboard",
    "schedule",
    "customers",
    "tickets",
    "inventory",
    "quotes",
    "invoices",
    "subscriptions",
    "sales",
    "engineers",
    "team",
    "settings",
    PROFILE_SECTION,
})

PERMISSIONS: Dict[Role, FrozenSet[str]] = {
    Role.SALES: frozenset({"sales", "customers", "quotes"}),
    Role.ENGINEER: frozenset({"engineers", "quotes", "sales", "tickets", "inventory", "schedule", "customers"}),
    Role.TECH: frozenset({"schedule", "tickets", "inventory"}),
    Role.ADMIN: SECTIONS,
}

LANDING_SECTIONS: Dict[Role, str] = {
    Role.ADMIN: "dashboard",
    Role.SALES: "sales",
    Role.ENGINEER: "engineers",
    Role.TECH: "schedule",
}


def find_staff_by_email(store: EntityStore, email: str) -> Optional[Staff]:
    """Case-insensitive lookup of a staff member by email"""
    normalized = (email or "").strip().lower()
    if not normalized:
        return None
    matches = store.staff.find(lambda s: s.email.lower() == normalized)
    return matches[0] if matches else None


def authenticate(store: EntityStore, email: str, password: Optional[str] = None) -> Staff:
    """
    Resolve a login to a staff member.

    Raises:
        AuthenticationError: If no staff member has this email
    """
    user = find_staff_by_email(store, email)
    if user is None:
        logger.info(f"Login rejected for '{email}'")
        raise AuthenticationError("Invalid email or password")
    logger.info(f"Login accepted for {user.id} ({user.role.value})")
    return user


def register(store: EntityStore, name: str, email: str, password: str, role: Role) -> Staff:
    """
    Create a staff account.

    Raises:
        ValidationError: If a field is missing or the email is already registered
    """
    if not (name and name.strip()) or not (email and email.strip()) or not password:
        raise ValidationError("All fields are required")
    if find_staff_by_email(store, email) is not None:
        raise ValidationError("User with this email already exists", field="email")
    user = store.staff.create(Staff(
        name=name.strip(),
        email=email.strip(),
        role=Role(role),
        phone=DEFAULT_PHONE,
    ))
    logger.info(f"Registered {user.id} as {user.role.value}")
    return user


def update_staff(store: EntityStore, staff_id: str, patch: Dict[str, Any]) -> Staff:
    """
    Edit a staff member's contact details.

    Args:
        store: Entity store
        staff_id: Staff member to edit
        patch: Any of name, email, phone

    Raises:
        NotFoundError: If the staff member does not exist
        ValidationError: On other fields, a blank name/email or an email held by someone else
    """
    store.staff.get(staff_id)
    unknown = sorted(set(patch) - PROFILE_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot edit staff field(s): {', '.join(unknown)}", field=unknown[0])

    changes = {}
    for field, value in patch.items():
        value = (value or "").strip()
        if field in ("name", "email") and not value:
            raise ValidationError(f"'{field}' is required", field=field)
        changes[field] = value

    if "email" in changes:
        holder = find_staff_by_email(store, changes["email"])
        if holder is not None and holder.id != staff_id:
            raise ValidationError("User with this email already exists", field="email")

    updated = store.staff.update(staff_id, changes)
    logger.info(f"Updated staff {staff_id}: {sorted(changes)}")
    return updated


def demo_user(store: EntityStore, role: Role) -> Staff:
    """First staff member holding ``role``, for one-click demo logins"""
    matches = store.staff.find(lambda s: s.role == Role(role))
    if not matches:
        raise AuthenticationError(f"No demo account for role {Role(role).value}")
    return matches[0]


def can_access(staff: Optional[Staff], section: str) -> bool:
    if staff is None:
        return False
    if section == PROFILE_SECTION:
        return True
    return section in PERMISSIONS.get(staff.role, frozenset())


def landing_section(role: Role) -> str:
    return LANDING_SECTIONS[Role(role)]


class SessionService:
    """Current-user session with a simulated network delay on login"""

    def __init__(
        self,
        store: EntityStore,
        scheduler: Optional[Scheduler] = None,
        delay: Optional[float] = None,
    ):
        self.store = store
        self.current_user: Optional[Staff] = None
        self.active_section: Optional[str] = None
        self.error: Optional[str] = None
        self._login = DeferredAction(
            "login",
            lambda email: authenticate(self.store, email),
            delay=settings.LOGIN_DELAY_SECONDS if delay is None else delay,
            scheduler=scheduler,
            on_complete=self._logged_in,
            on_error=self._login_failed,
        )

    @property
    def logging_in(self) -> bool:
        return self._login.in_progress

    def begin_login(self, email: str):
        """Start a delayed login; the outcome lands on current_user or error"""
        self.error = None
        self._login.trigger(email)

    def logout(self):
        self.current_user = None
        self.active_section = None

    def update_profile(self, patch: Dict[str, Any]) -> Staff:
        """Edit the logged-in user's own contact details"""
        if self.current_user is None:
            raise AuthenticationError("Not logged in")
        self.current_user = update_staff(self.store, self.current_user.id, patch)
        return self.current_user

    def can_access(self, section: str) -> bool:
        return can_access(self.current_user, section)

    def navigate(self, section: str) -> str:
        """Move to a section, falling back to the landing section when forbidden"""
        if self.current_user is None:
            raise AuthenticationError("Not logged in")
        if not self.can_access(section):
            section = landing_section(self.current_user.role)
        self.active_section = section
        return section

    def _logged_in(self, user: Staff):
        self.current_user = user
        self.active_section = landing_section(user.role)

    def _login_failed(self, error: Exception):
        if not isinstance(error, AuthenticationError):
            raise error
        self.error = error.message
