"""Tracking id and registration number generation."""

import secrets
import string
from datetime import UTC, datetime

from crvs_workflow.models.base import EventType

TRACKING_ID_CODE_LENGTH = 6
_ALPHABET = string.ascii_uppercase + string.digits


class DefaultIdGenerator:
    """Generates ``<event initial><6 random chars>`` tracking ids.

    Registration numbers are the current year followed by the tracking id.
    """

    def __init__(self, code_length: int = TRACKING_ID_CODE_LENGTH) -> None:
        self.code_length = code_length

    def tracking_id(self, event_type: EventType) -> str:
        code = "".join(secrets.choice(_ALPHABET) for _ in range(self.code_length))
        return f"{event_type.value[0]}{code}"

    def registration_number(self, event_type: EventType, tracking_id: str) -> str:  # noqa: ARG002
        return f"{datetime.now(UTC).year}{tracking_id}"
