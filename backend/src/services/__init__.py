"""
Business logic services.

Modules are imported directly (src.services.<name>); models import the
trending scorer from here, so this package stays free of model imports.
"""
