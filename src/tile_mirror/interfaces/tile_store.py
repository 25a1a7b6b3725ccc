from abc import ABC, abstractmethod
from typing import BinaryIO, Iterable, Sequence, Tuple


class ITileStore(ABC):
    """Interface for the content-addressed store tiles are mirrored into"""

    @abstractmethod
    def set_entry_file(self, path_segments: Sequence[str],
                       chunks: Iterable[bytes]) -> Tuple[str, str]:
        """Write one leaf entry, return (content_id, mime_type)"""
        pass

    @abstractmethod
    def open_entry_data(self, path_segments: Sequence[str]) -> BinaryIO:
        """Open the data of an entry, raise EntryNotFoundError if missing"""
        pass

    @abstractmethod
    def flush(self) -> None:
        """Durably persist every entry written since the last flush"""
        pass

    @abstractmethod
    def root_entrypoint(self) -> str:
        """Public reference to the root of the store"""
        pass

    @abstractmethod
    def root_writer_info(self) -> str:
        """Secret credential allowing further writes to the root"""
        pass
