"""CryptoFolio ORM Models 套件"""

from cryptofolio.models.state_record import StateRecord

__all__ = [
    "StateRecord",
]
