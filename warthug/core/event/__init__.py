from warthug.core.event.bus import EventBus, ListenerPriority, event_matches

__all__ = ["EventBus", "ListenerPriority", "event_matches"]
