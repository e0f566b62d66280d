from booking_sync.services.keepalive import keep_alive
from booking_sync.services.session_store import SessionStore
from booking_sync.services.sync_gate import GateDecision, SyncGate, SyncTrigger
from booking_sync.services.sync_service import SyncReconciler

__all__ = ["keep_alive", "SessionStore", "GateDecision", "SyncGate", "SyncTrigger", "SyncReconciler"]
