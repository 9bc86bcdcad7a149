"""Account provisioning."""

from .provisioning import AccountProvisioner

__all__ = ["AccountProvisioner"]
