"""
MealScope nutritional estimation core.

Estimates the nutritional content of a meal photo with an external
vision model and keeps the estimate consistent while the user edits
portion weights.

Structure:
- domain/: Estimation contract, recalculation engine, plate-size reconciliation
- infrastructure/: OpenAI vision adapter and configuration
- application/: Analysis session (state holder)
- tests/: Test suite (unit)
"""

__version__ = "1.0.0"
