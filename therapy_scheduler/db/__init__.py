"""Persistence adapters for the scheduling engine."""
from therapy_scheduler.db.memory_store import InMemorySchedulingStore
from therapy_scheduler.db.store import SchedulingStore
from therapy_scheduler.db.supabase_store import SupabaseSchedulingStore

__all__ = ["SchedulingStore", "InMemorySchedulingStore", "SupabaseSchedulingStore"]
