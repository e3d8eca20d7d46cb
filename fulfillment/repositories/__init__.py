"""Repositories package - storage access behind swappable interfaces."""
from fulfillment.repositories.base import (
    ProductRepo, CustomerRepo, OrderRepo, DeliveryRepo, DriverRepo, SettingsRepo, UnitOfWork
)
from fulfillment.repositories.sql import SqlUnitOfWork
from fulfillment.repositories.memory import InMemoryStore, InMemoryUnitOfWork

__all__ = [
    'ProductRepo', 'CustomerRepo', 'OrderRepo', 'DeliveryRepo', 'DriverRepo', 'SettingsRepo', 'UnitOfWork',
    'SqlUnitOfWork', 'InMemoryStore', 'InMemoryUnitOfWork',
]
