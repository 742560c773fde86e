from datetime import datetime
from typing import Any, Callable, Dict

Clock = Callable[[], datetime]
"""Returns the current, timezone-aware time"""

AuditDetails = Dict[str, Any]
