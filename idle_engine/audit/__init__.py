"""
Audit Package.

Exports the event buffer, event sinks and the plan exporter.
"""

from .events import EventBuffer, EventSink, JsonlEventSink, LoggingEventSink
from .exporter import SCHEMA_VERSION, export_plan, export_plan_to_file, plan_to_export_document

__all__ = [
    "EventBuffer",
    "EventSink",
    "JsonlEventSink",
    "LoggingEventSink",
    "SCHEMA_VERSION",
    "export_plan",
    "export_plan_to_file",
    "plan_to_export_document",
]
