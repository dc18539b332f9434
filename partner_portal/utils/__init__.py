# Import security functions
from .security import (
    verify_password,
    get_password_hash,
    create_access_token,
    generate_invitation_token,
    org_slug,
    is_hex_color,
    is_strict_email
)
