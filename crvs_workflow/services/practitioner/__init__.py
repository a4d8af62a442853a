"""Practitioner and location lookups."""

from crvs_workflow.services.practitioner.directory import Actor, PractitionerDirectory

__all__ = ["Actor", "PractitionerDirectory"]
