"""Credential validation package."""

from spendy.validation.validator import CredentialValidator

__all__ = ["CredentialValidator"]
