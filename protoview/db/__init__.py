from .manager import DBManager

__all__ = ['DBManager']
