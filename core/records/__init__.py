"""
core.records — the plain record layer beneath governance.

Creates visitors and lost items (recording a 'created' history entry so
every governed record has a revert basis) and reads them back. All later
changes go through core.governance.

Public API:
    create_visitor, create_lost_item  — create a record + 'created' entry
    get_entity                        — read any record, deleted ones included
"""

from core.records.entities import (
    create_visitor,
    create_lost_item,
    get_entity,
)

__all__ = [
    'create_visitor',
    'create_lost_item',
    'get_entity',
]
