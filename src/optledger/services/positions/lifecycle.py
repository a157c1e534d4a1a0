"""Exit lifecycle classification.

Decides which consolidation action an exit needs:

    OPEN,    exit == remaining  -> SINGLE_TOTAL_EXIT
    OPEN,    exit <  remaining  -> FIRST_PARTIAL
    PARTIAL, exit <  remaining  -> SUBSEQUENT_PARTIAL
    PARTIAL, exit == remaining  -> FINAL_PARTIAL
"""

from optledger.services.positions.errors import UnknownExitTypeError
from optledger.services.positions.models import ExitType, Position, PositionStatus
from optledger.system import LoggerFactory

logger = LoggerFactory.get_logger()


class ExitLifecycleDetector:
    """Classifies an exit by the position's status and remaining quantity."""

    def detect(self, position: Position, requested_quantity: int) -> ExitType:
        """
        Classify an exit of `requested_quantity` units.

        Returns ExitType.UNKNOWN rather than raising; see `require`.
        """
        remaining = position.remaining_quantity
        if requested_quantity > remaining:
            return ExitType.UNKNOWN

        is_final = requested_quantity == remaining
        is_first = position.status == PositionStatus.OPEN and remaining == position.total_quantity
        is_subsequent = position.status == PositionStatus.PARTIAL and remaining > 0

        if is_final:
            return ExitType.SINGLE_TOTAL_EXIT if is_first else ExitType.FINAL_PARTIAL
        if is_first:
            return ExitType.FIRST_PARTIAL
        if is_subsequent:
            return ExitType.SUBSEQUENT_PARTIAL
        return ExitType.UNKNOWN

    def require(self, position: Position, requested_quantity: int) -> ExitType:
        """
        Classify an exit, refusing unclassifiable ones.

        Raises:
            UnknownExitTypeError: If the exit fits no lifecycle stage
        """
        exit_type = self.detect(position, requested_quantity)
        if exit_type == ExitType.UNKNOWN:
            logger.error(
                "positions.exit.unknown_type",
                position_id=position.position_id,
                status=position.status.value,
                quantity=requested_quantity,
                remaining=position.remaining_quantity,
                total=position.total_quantity,
            )
            raise UnknownExitTypeError(
                f"Cannot classify exit of {requested_quantity} from {position.position_id} "
                f"(status={position.status.value}, remaining={position.remaining_quantity}, "
                f"total={position.total_quantity})"
            )
        return exit_type
