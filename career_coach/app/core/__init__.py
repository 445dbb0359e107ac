"""Initialization file for the core package of the career coach application.

Notes:
    1. The configuration and typed errors live in submodules of this package.
    2. This file does not perform any operations and is used solely for package initialization.

"""
