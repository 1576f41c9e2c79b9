"""
CLI Package.

Exposes the ``idlectl`` command group.
"""
