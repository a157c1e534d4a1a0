"""Exit scenario classification."""

from optledger.services.positions.models import ExitScenario, Position

_DESCRIPTIONS = {
    ExitScenario.SINGLE_LOT: "Exit from a single entry lot",
    ExitScenario.MULTIPLE_LOTS_TOTAL_EXIT: "Total exit across multiple entry lots",
    ExitScenario.PARTIAL_SINGLE_SOURCE: "Partial exit from a single-entry position",
    ExitScenario.COMPLEX_MULTIPLE_SOURCES: "Exit from a multi-entry position with partially consumed lots",
}


class ScenarioDetector:
    """
    Classifies an exit by the shape of the position's lots.

    Rules are evaluated in order, first match wins:
    1. More than one lot ever entered and an active lot already partially
       consumed: COMPLEX_MULTIPLE_SOURCES
    2. Partial exit from a single-entry position: PARTIAL_SINGLE_SOURCE
    3. Total exit with more than one active lot: MULTIPLE_LOTS_TOTAL_EXIT
    4. Otherwise: SINGLE_LOT
    """

    def detect(self, position: Position, requested_quantity: int) -> ExitScenario:
        """
        Classify an exit of `requested_quantity` units.

        Args:
            position: Position being exited
            requested_quantity: Units requested

        Returns:
            Detected scenario
        """
        active_lots = position.active_lots
        has_multiple_entries = len(position.entry_lots) > 1
        is_partial = requested_quantity < position.remaining_quantity
        has_partially_consumed = any(lot.is_partially_consumed for lot in active_lots)

        if has_multiple_entries and has_partially_consumed:
            return ExitScenario.COMPLEX_MULTIPLE_SOURCES
        if is_partial and not has_multiple_entries:
            return ExitScenario.PARTIAL_SINGLE_SOURCE
        if len(active_lots) > 1 and not is_partial:
            return ExitScenario.MULTIPLE_LOTS_TOTAL_EXIT
        return ExitScenario.SINGLE_LOT

    @staticmethod
    def describe(scenario: ExitScenario) -> str:
        """Human-readable description of a scenario."""
        return _DESCRIPTIONS[scenario]
