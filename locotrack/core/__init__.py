"""
Ядро: бизнес-логика без привязки к транспорту.
"""
