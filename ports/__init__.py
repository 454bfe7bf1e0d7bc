from .repos import CompanyCachePort
from .browser import PagePort, SessionPoolPort

__all__ = [
    "CompanyCachePort",
    "PagePort",
    "SessionPoolPort",
]
