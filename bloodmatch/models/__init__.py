"""ORM Models — SQLAlchemy declarative models for all domain entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - BloodRequest is the only table with state-machine columns

Design Decisions:
    - One file per entity for locality
    - All models imported here so Base.metadata holds every table for create_all
      and alembic autogenerate
"""

from bloodmatch.models.requester import Requester  # noqa: F401
from bloodmatch.models.donor import Donor  # noqa: F401
from bloodmatch.models.stock_entry import StockEntry  # noqa: F401
from bloodmatch.models.blood_request import BloodRequest  # noqa: F401
