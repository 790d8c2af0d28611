"""Persistence of channels, feeds and items.

Every function takes an ``AsyncSession`` as its first argument and leaves
transaction boundaries to the caller: nothing here commits.
"""
