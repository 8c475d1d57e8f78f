"""
Login credentials issued when a registration is approved.

User IDs encode the user type in their prefix: ``ptrn1234`` for patrons,
``crdcl1234`` for credit clients. Passwords are 8 alphanumeric characters
and are shown to the admin and mailed to the user in plaintext.
"""

import re
import secrets
import string
from typing import Collection, Optional

PATRON = 'patron'
CREDIT_CLIENT = 'creditClient'

USER_ID_PREFIXES = {
    PATRON: 'ptrn',
    CREDIT_CLIENT: 'crdcl',
}

PASSWORD_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
PASSWORD_LENGTH = 8

USER_ID_PATTERN = re.compile(r'^(ptrn|crdcl)\d{4}$')


def user_id_prefix(user_type: Optional[str]) -> str:
    """Anything that is not a patron is treated as a credit client."""
    return USER_ID_PREFIXES[PATRON if user_type == PATRON else CREDIT_CLIENT]


def generate_user_id(user_type: Optional[str], existing: Collection[str] = (), attempts: int = 50) -> str:
    """
    Generate ``prefix + 4 random digits`` (suffix in [1000, 9999]).

    IDs present in ``existing`` are skipped. With 9000 possible suffixes per
    prefix the space can run out, in which case ValueError is raised.
    """
    prefix = user_id_prefix(user_type)
    for _ in range(attempts):
        user_id = f"{prefix}{1000 + secrets.randbelow(9000)}"
        if user_id not in existing:
            return user_id
    raise ValueError(f"Could not find a free user ID with prefix '{prefix}'")


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    return ''.join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def user_id_matches_type(user_id: str, user_type: Optional[str]) -> bool:
    match = USER_ID_PATTERN.match(user_id or '')
    return bool(match) and match.group(1) == user_id_prefix(user_type)
