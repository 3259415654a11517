from .runners import RunnerGenerator
from .orders import OrderGenerator

__all__ = [
    "RunnerGenerator",
    "OrderGenerator",
]
