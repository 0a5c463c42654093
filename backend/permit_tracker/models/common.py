from __future__ import annotations

import uuid


def new_uuid() -> str:
    """Primary keys are UUID strings, opaque to clients."""
    return str(uuid.uuid4())
