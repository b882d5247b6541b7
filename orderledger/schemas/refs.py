"""Distinct types for live references versus denormalized snapshot fields.

A *live* reference (``InventoryItemRef``, ``MenuItemRef``) is a foreign key:
resolve it to read the current value. A *snapshot* field (``SnapshotName``,
``SnapshotUnit``, ``SnapshotCost``) was copied when its document was written
and keeps that historical value; never treat it as current.
"""
from decimal import Decimal
from typing import NewType
from uuid import UUID

InventoryItemRef = NewType("InventoryItemRef", UUID)
MenuItemRef = NewType("MenuItemRef", UUID)
CategoryRef = NewType("CategoryRef", UUID)

SnapshotName = NewType("SnapshotName", str)
SnapshotUnit = NewType("SnapshotUnit", str)
SnapshotCost = NewType("SnapshotCost", Decimal)
SnapshotPrice = NewType("SnapshotPrice", Decimal)
