"""Core HR module — Organization and User models, schemas and services."""

from manahr.core_hr.models import Organization, User

__all__ = ["Organization", "User"]
