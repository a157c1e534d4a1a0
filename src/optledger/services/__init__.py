"""OptLedger services package.

Each service is independently testable and communicates via Protocol
interfaces using dependency injection.
"""

from optledger.services.positions import IPositionService, PositionService

__all__: list[str] = [
    "IPositionService",
    "PositionService",
]
