"""
Общая инфраструктура тестов jetpl.

Модули:
- models: хост-объекты для тестов вычислителя
"""

from .models import User

__all__ = ["User"]
