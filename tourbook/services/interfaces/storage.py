"""
Object storage interface.
The core never touches image bytes: it keeps opaque references, asks for
display URLs and releases references when their owner goes away.
"""

from abc import ABC, abstractmethod
from typing import Optional


class ObjectStorage(ABC):
    """
    Interface for the image store.

    Implementations:
    - HttpObjectStorage: storage service reached over HTTP
    """

    @abstractmethod
    def get_url(self, ref: Optional[str]) -> Optional[str]:
        """
        Display URL for a stored object.

        Args:
            ref: Opaque storage reference

        Returns:
            URL string, or None when there is no reference
        """
        pass

    @abstractmethod
    async def release(self, ref: str) -> None:
        """
        Delete a stored object. Must not raise for an unknown reference.

        Args:
            ref: Opaque storage reference
        """
        pass
