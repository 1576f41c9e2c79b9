"""
Workflows Package for the IdLE engine.

This package loads workflow definitions, lifecycle requests and execution
options from YAML or JSON files.
"""

from .loader import load_document, load_execution_options, load_request, load_workflow

__all__ = [
    "load_document",
    "load_workflow",
    "load_request",
    "load_execution_options",
]
