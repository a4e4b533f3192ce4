"""
Core Module Package.

This package contains the core infrastructure components
that all other modules depend on.

Components:
- clock: UTC time helpers
- exceptions: Custom exception hierarchy
- constants: Desk-wide constants
- money: Exact decimal arithmetic
"""
