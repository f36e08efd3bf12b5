"""
Path utilities for account hierarchies.

A materialized path is the chain of ancestor ids from the root down to the
account itself, joined by ``/``. A root's path is just its own id.

Provides functions for:
- Building materialized paths
- Checking ancestry between paths
"""

from typing import Optional

PATH_SEPARATOR = '/'


def build_path(account_id: str, parent_path: Optional[str] = None) -> str:
    """
    Build a materialized path for an account.

    Args:
        account_id: The account's ID
        parent_path: Parent's path (None for root accounts)

    Returns:
        Materialized path string

    Examples:
        >>> build_path('A', None)
        'A'
        >>> build_path('B', 'A')
        'A/B'
        >>> build_path('C', 'A/B')
        'A/B/C'
    """
    if not parent_path:
        return account_id
    return f'{parent_path}{PATH_SEPARATOR}{account_id}'


def is_ancestor(ancestor_path: str, descendant_path: str) -> bool:
    """
    Check whether one path lies strictly above another.

    Matches on whole path segments, so 'A/B' is not an ancestor of 'A/BC'.

    Examples:
        >>> is_ancestor('A', 'A/B/C')
        True
        >>> is_ancestor('A/B', 'A/BC')
        False
        >>> is_ancestor('A/B', 'A/B')
        False
    """
    if not ancestor_path or not descendant_path:
        return False
    return descendant_path.startswith(ancestor_path + PATH_SEPARATOR)
