# src/core/__init__.py
"""
Доменный слой.
Отслеживание водителя, чат бронирования и допуск к ним, независимые от UI.
"""
