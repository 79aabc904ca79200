"""Biometric capability package."""

from spendy.services.biometrics.interface import (
    BiometricAuthenticatorInterface,
    UnavailableBiometrics,
)

__all__ = [
    "BiometricAuthenticatorInterface",
    "UnavailableBiometrics",
]
