"""
Общие модели, используемые ядром и API.
"""
