"""ID generation utilities."""
import uuid


def generate_id() -> str:
    """Generate a unique job or upload ID."""
    return str(uuid.uuid4())
