from agency_hub.models.view_state import ViewStateEntry

__all__ = [
    "ViewStateEntry",
]
