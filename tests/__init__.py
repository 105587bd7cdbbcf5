"""
Selector hub test suite.

This package contains:
- unit/: Unit tests (no backend, httpx mock transport)
- integration/: Hub flows against an in-memory semantics loader and a fake backend
"""
