"""Hearth FHIR document store integration."""

from crvs_workflow.services.hearth.client import HearthClient

__all__ = ["HearthClient"]
