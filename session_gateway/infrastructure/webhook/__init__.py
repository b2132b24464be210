from .event_dispatcher import EventDispatcher, RecentEvents

__all__ = ['EventDispatcher', 'RecentEvents']
