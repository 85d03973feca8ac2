from abc import ABC, abstractmethod

from sill.domain.models import CompiledData, Rows


class RowStore(ABC):
    """
    Abstract base class for the storage of the row collections.
    """

    @abstractmethod
    async def fetch_compiled_data(self) -> CompiledData:
        """Read the compiled data produced by the external build."""
        pass

    @abstractmethod
    async def fetch_rows(self) -> Rows:
        """Read the four row collections from the main data location."""
        pass

    @abstractmethod
    async def write_rows(self, rows: Rows, commit_message: str) -> None:
        """
        Persist the four row collections in a single atomic action.
        Either every file is updated or none is; failures are raised.
        """
        pass
