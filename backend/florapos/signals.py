# Overview: Payload-free change notifications for the terminal stores.
"""
Receivers re-read the store they are interested in; the sender is the
store object itself (ActivityLog or InventoryCache).
"""

from blinker import Namespace

_signals = Namespace()

activity_log_changed = _signals.signal("activity-log-changed")
inventory_changed = _signals.signal("inventory-changed")
