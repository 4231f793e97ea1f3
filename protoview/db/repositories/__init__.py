from .interaction_repository import InteractionRepository

__all__ = ['InteractionRepository']
