# src/shared/__init__.py
"""
Общий код между ядром и веб-клиентом.

Модули:
- models: DTO и Pydantic-модели (позиции, записи локаций, сообщения чата)
"""

__all__: list[str] = []
