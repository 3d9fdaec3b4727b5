"""ID generation utilities."""
import uuid
from datetime import datetime, timezone


def generate_plan_id() -> str:
    """
    Generate a unique plan ID.

    Format: plan_{timestamp}_{uuid_short}
    Example: plan_20261019_a3f2d1c4

    Returns:
        str: A unique plan identifier
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d")
    uuid_short = uuid.uuid4().hex[:8]
    return f"plan_{timestamp}_{uuid_short}"
