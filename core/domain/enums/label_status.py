"""
Label Status Enum.

Shipping label lifecycle of a fulfillment:
NONE -> PENDING_PURCHASE -> PURCHASED, with the void branch
PURCHASED -> VOID_REQUESTED -> VOIDED | VOID_FAILED.
"""
from enum import Enum


class LabelStatus(str, Enum):
    """Label lifecycle values."""

    NONE = "none"
    PENDING_PURCHASE = "pending_purchase"
    PURCHASED = "purchased"
    VOID_REQUESTED = "void_requested"
    VOIDED = "voided"
    VOID_FAILED = "void_failed"
