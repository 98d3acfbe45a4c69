"""
Reads and changes the reserved encoding capacity of the media account.

Jobs only make progress while the account has reserved encoding units. Accounts that
encode rarely keep the units at zero and raise them around a batch of work, which
`ReservedCapacityManager.reserved_capacity` does as a context manager.
"""
from contextlib import contextmanager
from dataclasses import replace
from typing import Iterator

from loguru import logger

from ..domain.exceptions import EncodeOrchestratorException, RemoteError, ValidationError
from ..domain.models import ReservedCapacity, ReservedUnitType
from .interfaces import RemoteJobClient


class ReservedCapacityManager:
    """Gets and sets reserved encoding capacity through a `RemoteJobClient`."""

    def __init__(self, remote_client: RemoteJobClient):
        self.remote_client = remote_client

    def get_current_capacity(self) -> ReservedCapacity:
        try:
            return self.remote_client.get_reserved_capacity()
        except Exception as e:
            logger.error(f"Could not read the reserved capacity: {e}")
            raise RemoteError.wrap("Could not read the reserved capacity", e) from e

    def set_capacity(self, unit_type: ReservedUnitType, units: int) -> ReservedCapacity:
        """
        Sets the number and speed tier of reserved encoding units.

        The current record is read first, because an update must name the account it
        applies to.

        Args:
            unit_type: The speed tier (S1, S2 or S3).
            units: The number of units to reserve. Zero releases all units. The remote
                   service decides which values it accepts.

        Returns:
            The capacity that was sent to the remote service.

        Raises:
            ValidationError: If the remote record has no account id.
            RemoteError: If the remote service rejected the read or the update.
        """
        current = self.get_current_capacity()
        if not current.account_id:
            raise ValidationError("The reserved capacity record carries no account id.")

        unit_type = ReservedUnitType(unit_type)
        updated = replace(current, unit_type=unit_type, current_units=units)
        try:
            self.remote_client.update_reserved_capacity(updated)
        except Exception as e:
            logger.error(f"Could not set the reserved capacity to {units} x {unit_type.value}: {e}")
            raise RemoteError.wrap(f"Could not set the reserved capacity to {units} x {unit_type.value}", e) from e

        logger.info(f"Reserved capacity set to {units} x {updated.unit_type.value}")
        return updated

    @contextmanager
    def reserved_capacity(
        self, unit_type: ReservedUnitType = ReservedUnitType.S2, units: int = 1
    ) -> Iterator[ReservedCapacity]:
        """
        Makes sure encoding units are reserved for the duration of the block.

        If no units are reserved when the block is entered, `units` units of
        `unit_type` are reserved, and the previous capacity is restored when the
        block exits, also when it raises. If the block raises and the restore fails
        too, the restore failure is only logged. Capacity that was already reserved is
        left untouched.

        Yields:
            The capacity in effect inside the block.
        """
        original = self.get_current_capacity()
        if original.current_units:
            logger.debug(f"Using the already reserved {original.current_units} unit(s)")
            yield original
            return

        raised = self.set_capacity(unit_type, units)
        try:
            yield raised
        except BaseException:
            # The block's own failure is what the caller must see.
            try:
                self._restore(original)
            except EncodeOrchestratorException as restore_error:
                logger.error(f"Could not restore the reserved capacity after a failed block: {restore_error}")
            raise
        self._restore(original)

    def _restore(self, original: ReservedCapacity):
        restore_type = original.unit_type or ReservedUnitType.S1
        logger.info(f"Restoring the reserved capacity to {original.current_units or 0} x {restore_type.value}")
        self.set_capacity(restore_type, original.current_units or 0)
