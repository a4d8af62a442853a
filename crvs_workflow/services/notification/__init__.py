"""Notification/event pipeline integration."""

from crvs_workflow.services.notification.client import NotificationClient, WorkflowEvent, event_route

__all__ = ["NotificationClient", "WorkflowEvent", "event_route"]
