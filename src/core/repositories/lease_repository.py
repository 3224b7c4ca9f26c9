"""Abstract contract for per-user upload leases."""

from abc import ABC, abstractmethod


class UploadLeaseRepository(ABC):
    """Contract for a lease that at most one upload session holds per user.

    The lease lives in shared storage so it holds across processes.
    Expiry bounds how long a crashed holder can block the user.
    """

    @abstractmethod
    def acquire(self, *, user_id: str, lease_id: str, expires_at: int, now: int) -> bool:
        """Take the user's lease unless another live lease exists.

        Args:
            user_id: Owner of the lease
            lease_id: Identifier of this holder
            expires_at: Epoch seconds after which the lease may be taken over
            now: Current epoch seconds

        Returns:
            True if the lease was taken, False if another holder has it

        Raises:
            UploadLeaseError: If the lease store fails
        """

    @abstractmethod
    def release(self, *, user_id: str, lease_id: str) -> bool:
        """Drop the lease if this holder still owns it.

        Returns:
            False if the lease had already expired and been taken over

        Raises:
            UploadLeaseError: If the lease store fails
        """
