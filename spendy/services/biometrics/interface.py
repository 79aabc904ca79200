"""
Biometric Capability Interface

DESIGN DECISION: The session core never talks to a concrete biometric
API (Face ID, fingerprint readers, ...). It depends on this narrow
contract only:

    evaluate(reason) -> SUCCESS | FAILURE | CANCELLED | UNAVAILABLE

Platform adapters implement it; tests substitute a stub.
"""

from abc import ABC, abstractmethod

from spendy.models.session import BiometricResult


class BiometricAuthenticatorInterface(ABC):
    """Asynchronous platform biometric evaluation."""

    @abstractmethod
    async def evaluate(self, reason: str) -> BiometricResult:
        """
        Prompt the user for biometric verification.

        Args:
            reason: Text shown in the system prompt

        Returns:
            The outcome. Implementations must not raise for a failed or
            cancelled prompt; those are ordinary results.
        """
        pass


class UnavailableBiometrics(BiometricAuthenticatorInterface):
    """Used where the platform has no biometric sensor."""

    async def evaluate(self, reason: str) -> BiometricResult:
        return BiometricResult.UNAVAILABLE
