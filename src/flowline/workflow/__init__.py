"""Workflow domain concepts.

This package introduces first-class types for:
- Trigger events (signals) and the trigger catalogue
- Condition trees and the evaluator that decides whether a workflow fires
- Actions (side-effecting steps) and their registry
- Workflow definitions and the store they are read from
"""

__all__: list[str] = []
