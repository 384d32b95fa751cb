"""
Inngest Functions Registry.
"""

from .prep_sheet import regenerate_prep_sheet_fn

all_functions = [
    regenerate_prep_sheet_fn,
]

__all__ = [
    "all_functions",
    "regenerate_prep_sheet_fn",
]
