"""Test package marker for the calnews suites.

What:
  Marks ``tests`` as a package so pytest can import shared helpers from
  nested modules.

Invariants & Safety:
  - Importing ``tests`` has no side effects.
"""
