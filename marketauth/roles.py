"""User roles and their validation."""

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLE_SELLER = "seller"

VALID_ROLES = (ROLE_USER, ROLE_SELLER, ROLE_ADMIN)


class InvalidRoleError(ValueError):
    """Raised when a role is empty or not one of the known roles."""


def validate_role(role):
    """Raise InvalidRoleError unless ``role`` is a known role."""
    if not role:
        raise InvalidRoleError("role cannot be empty")
    if role not in VALID_ROLES:
        allowed = " ".join(VALID_ROLES)
        raise InvalidRoleError(f"invalid role: {role} (must be one of: [{allowed}])")


def is_valid_role(role):
    """Return True when ``role`` is a known role."""
    try:
        validate_role(role)
    except InvalidRoleError:
        return False
    return True


def is_admin(role):
    return role == ROLE_ADMIN


def is_user(role):
    return role == ROLE_USER


def default_role():
    """The role given to new accounts that do not ask for one."""
    return ROLE_USER