"""
pkgsys - Package transaction orchestration for RPM based systems

Sequences the collaborators needed to change the installed package set:
- repository and target (rpmdb) initialization
- license confirmation before installation
- libsolv resolution with scoped solver flags
- librpm commit and post-commit verification
"""

__version__ = "0.3.0"
__author__ = "pkgsys contributors"
