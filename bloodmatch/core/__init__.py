"""Core Layer — pure domain logic, no IO, no async, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - All functions are pure and deterministic (time is always passed in)

Design Decisions:
    - Functional core separated from imperative shell: services/ load records,
      ask core what the next state is, then apply it with conditional updates
"""
