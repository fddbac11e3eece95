"""Id generation for saved content versions."""

import uuid
from typing import Optional


# Fixed namespace so version ids are reproducible across runs
STORYLOOP_NAMESPACE = uuid.UUID("6f1c2a9e-8d4b-4e37-9a51-3c0b7d2e5f18")


def generate_deterministic_uuid(content: str, namespace: Optional[uuid.UUID] = None) -> str:
    """
    Generate a UUID v5 from a string. Same input, same id.

    Example:
        >>> generate_deterministic_uuid("v2:1:Led a team") == generate_deterministic_uuid("v2:1:Led a team")
        True
    """
    return str(uuid.uuid5(namespace or STORYLOOP_NAMESPACE, content))
