"""Common type definitions for the workflow service.

Type aliases shared between the record model, the collaborator clients and
the API layer.
"""

from typing import Any, TypeAlias

# JSON-compatible types for FHIR documents and API payloads
JSONDict: TypeAlias = dict[str, Any]

# Headers forwarded to collaborating services (Authorization, x-correlation-id)
AuthHeaders: TypeAlias = dict[str, str]

