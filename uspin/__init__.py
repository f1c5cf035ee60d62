"""USpin image builder.

Core design goals:
- Declarative package lists, applied in homogeneous blocks
- Every mount tracked and torn down, whatever happens
- Strictly sequential builder stages
- Bootloader selection by capability
- Centralized logging
"""

__all__ = []
