"""Errors raised by the calculators.

All of them subclass ValueError so the HTTP layer can answer 400 for bad input.
"""


class CalculationError(ValueError):
    pass


class NoMaterialsError(CalculationError):
    def __init__(self, message="No materials found for this LCA"):
        super().__init__(message)


class AllocationError(CalculationError):
    pass


class InvalidWeightingError(CalculationError):
    pass


class UnknownCategoryError(CalculationError):
    pass
