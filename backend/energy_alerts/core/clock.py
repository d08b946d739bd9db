from collections.abc import Callable
from datetime import datetime

from energy_alerts.models.shared import utc_now

# Returns the current time as a timezone-aware datetime. Services take one so
# tests can drive evaluation with simulated time.
Clock = Callable[[], datetime]

system_clock: Clock = utc_now
