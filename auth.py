# auth.py
import logging
import re
from datetime import datetime

from passlib.context import CryptContext

from database import Database, new_id

logger = logging.getLogger("billing.auth")

ADMIN = "Admin"
CASHIER = "Cashier"
ROLES = (ADMIN, CASHIER)

VIEWS = ("dashboard", "pos", "inventory", "reports", "users", "barcode", "settings")
CASHIER_VIEWS = ("dashboard", "pos", "barcode")

MIN_PASSWORD_LENGTH = 6
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Messages shown for identity provider error codes
LOGIN_MESSAGES = {
    "auth/user-not-found": "No account found with this email.",
    "auth/wrong-password": "Incorrect password.",
    "auth/invalid-email": "Invalid email address.",
}
SIGNUP_MESSAGES = {
    "auth/email-already-in-use": "An account with this email already exists.",
    "auth/weak-password": "Password should be at least 6 characters.",
    "auth/invalid-email": "Invalid email address.",
}
ADD_USER_MESSAGES = {
    "auth/email-already-in-use": "Email already in use",
    "auth/invalid-email": "Invalid email address",
    "auth/weak-password": "Password is too weak",
}

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class AuthError(Exception):
    """Identity failure carrying a provider code and a user-facing message."""
    def __init__(self, code, message=None):
        self.code = code
        self.message = message or "Something went wrong. Please try again."
        super().__init__(self.message)


class PermissionDenied(AuthError):
    def __init__(self, message):
        super().__init__("auth/permission-denied", message)


def _fail(code, messages, fallback):
    return AuthError(code, messages.get(code, fallback))


def can_access(role, view):
    if view not in VIEWS:
        return False
    if role == ADMIN:
        return True
    return view in CASHIER_VIEWS


def visible_views(role):
    return [v for v in VIEWS if can_access(role, v)]


class UserSession:
    """The signed-in user for one terminal."""
    def __init__(self, id, email, name, role=CASHIER):
        self.id = id
        self.email = email
        self.name = name or email.split('@')[0]
        self.role = role if role in ROLES else CASHIER

    @property
    def is_admin(self):
        return self.role == ADMIN

    def __repr__(self):
        return f"UserSession({self.email!r}, role={self.role!r})"


def require_view(session, view):
    if session is None:
        raise AuthError("auth/unauthenticated", "User must be authenticated")
    if not can_access(session.role, view):
        raise PermissionDenied(f"{session.role} cannot access {view}")


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, hashed) -> bool:
    if not hashed:
        return False
    return _pwd_context.verify(password, hashed)


class IdentityProvider:
    """Email/password accounts stored next to the user documents."""
    def __init__(self, db: Database):
        self.db = db

    def _check_credentials(self, email, password):
        if not email or not EMAIL_RE.match(email):
            return "auth/invalid-email"
        if self.db.get_user_by_email(email):
            return "auth/email-already-in-use"
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            return "auth/weak-password"
        return None

    def _create(self, name, email, password, role, status="active"):
        user_id = new_id()
        self.db.save_user(user_id, {
            'name': name,
            'email': email,
            'role': role if role in ROLES else CASHIER,
            'status': status,
            'password_hash': hash_password(password),
            'createdAt': datetime.now().isoformat(timespec='seconds'),
        })
        return user_id

    def signup(self, name, email, password, role=CASHIER):
        """Register an account and return a signed-in session."""
        code = self._check_credentials(email, password)
        if code:
            logger.warning(f"Signup failed for {email}: {code}")
            raise _fail(code, SIGNUP_MESSAGES, "Signup failed. Please try again.")
        user_id = self._create(name, email, password, role)
        logger.info(f"Account created: {email} ({role})")
        return UserSession(user_id, email, name, role)

    def login(self, email, password):
        if not email or not EMAIL_RE.match(email):
            raise _fail("auth/invalid-email", LOGIN_MESSAGES, "Login failed. Please try again.")
        user = self.db.get_user_by_email(email)
        if user is None:
            raise _fail("auth/user-not-found", LOGIN_MESSAGES, "Login failed. Please try again.")
        if not verify_password(password, user.get('password_hash')):
            logger.warning(f"Wrong password for {email}")
            raise _fail("auth/wrong-password", LOGIN_MESSAGES, "Login failed. Please try again.")
        return UserSession(user['id'], user['email'], user.get('name'), user.get('role') or CASHIER)

    def add_user(self, session, name, email, password, role=CASHIER, status="active"):
        """Admin-only: create another account without signing in as it."""
        require_view(session, "users")
        code = self._check_credentials(email, password)
        if code:
            raise _fail(code, ADD_USER_MESSAGES, "Error adding user")
        return self._create(name, email, password, role, status)

    def update_user(self, session, user_id, fields):
        require_view(session, "users")
        # email is fixed once the account exists
        updates = {k: v for k, v in fields.items() if k in ('name', 'role', 'status')}
        if 'role' in updates and updates['role'] not in ROLES:
            raise AuthError("auth/invalid-role", f"Unknown role: {updates['role']}")
        return self.db.update_user(user_id, updates)

    def delete_user(self, session, user_id):
        require_view(session, "users")
        if user_id == session.id:
            raise AuthError("auth/self-delete", "Cannot delete your own account")
        return self.db.delete_user(user_id)

    def list_users(self, session):
        require_view(session, "users")
        users = self.db.list_users()
        for u in users:
            u.pop('password_hash', None)
            u['role'] = u.get('role') or CASHIER
            u['status'] = u.get('status') or 'active'
        return users
