# Alembic will detect models here
from .charge_lab import ChargeLab
from .fuel_record import FuelRecord
