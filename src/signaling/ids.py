"""Client identifier generation."""

import uuid


def generate_client_id() -> str:
    """Generate a candidate client identifier.

    Uses a random (version 4) UUID, giving 122 bits of randomness. Uniqueness
    across live connections is not guaranteed here; the caller must insert
    into the ConnectionRegistry and handle DuplicateIdError.

    Returns:
        str: Canonical UUID string
    """
    return str(uuid.uuid4())
