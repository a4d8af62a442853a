"""Well-known FHIR system and extension URLs used by the workflow."""

from crvs_workflow.models.base import EventType

OPENCRVS_SPECIFICATION_URL = "http://opencrvs.org/specs/"

# Coding systems
REG_STATUS_SYSTEM = f"{OPENCRVS_SPECIFICATION_URL}reg-status"
EVENT_TYPE_SYSTEM = f"{OPENCRVS_SPECIFICATION_URL}types"
DOC_TYPES_SYSTEM = "http://opencrvs.org/doc-types"
COMPOSITION_IDENTIFIER_SYSTEM = "urn:ietf:rfc:3986"

# Identifier systems
PAPER_FORM_ID_SYSTEM = f"{OPENCRVS_SPECIFICATION_URL}id/paper-form-id"
SYSTEM_IDENTIFIER_SYSTEM = f"{OPENCRVS_SPECIFICATION_URL}id/system_identifier"

# Extension URLs
REG_LAST_USER_URL = f"{OPENCRVS_SPECIFICATION_URL}extension/regLastUser"
REG_LAST_LOCATION_URL = f"{OPENCRVS_SPECIFICATION_URL}extension/regLastLocation"
REG_LAST_OFFICE_URL = f"{OPENCRVS_SPECIFICATION_URL}extension/regLastOffice"
REQUEST_CORRECTION_URL = f"{OPENCRVS_SPECIFICATION_URL}extension/requestCorrection"
MARKED_AS_DUPLICATE_URL = f"{OPENCRVS_SPECIFICATION_URL}extension/markedAsDuplicate"
MARKED_AS_NOT_DUPLICATE_URL = f"{OPENCRVS_SPECIFICATION_URL}extension/markedAsNotDuplicate"

LAST_REG_EXTENSION_URLS = (REG_LAST_USER_URL, REG_LAST_LOCATION_URL, REG_LAST_OFFICE_URL)

# Composition doc-type codes
COMPOSITION_EVENT_CODES: dict[str, EventType] = {
    "birth-declaration": EventType.BIRTH,
    "birth-notification": EventType.BIRTH,
    "death-declaration": EventType.DEATH,
    "death-notification": EventType.DEATH,
    "marriage-declaration": EventType.MARRIAGE,
    "marriage-notification": EventType.MARRIAGE,
}


def tracking_id_system(event_type: EventType) -> str:
    """Identifier system of the tracking id for an event type."""
    return f"{OPENCRVS_SPECIFICATION_URL}id/{event_type.slug}-tracking-id"


def registration_number_system(event_type: EventType) -> str:
    """Identifier system of the registration number for an event type."""
    return f"{OPENCRVS_SPECIFICATION_URL}id/{event_type.slug}-registration-number"
