"""
permgate: permission templates and grant resolution.

Applies permission templates to projects and simulates what a template would
grant, without side effects.
"""

__version__ = "0.1.0"
