"""ManaHR Core — attendance, access control, leave and payroll for multi-tenant HR."""

__version__ = "1.0.0"
