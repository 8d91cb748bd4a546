"""
Billing Kernel

The lowest layer of the billing core:
- Structured logging and typed errors
- ORM models for locations, owners, packages and configuration rows
- Location identity, validation and reconciliation
- External provider interfaces
"""

__version__ = "0.1.0"
