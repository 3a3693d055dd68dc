from .plugin import FACTOR_SOURCES, REQUESTS, ShoppingBasketUseCase

__all__ = ["FACTOR_SOURCES", "REQUESTS", "ShoppingBasketUseCase"]
