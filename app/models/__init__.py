# app/models/__init__.py
# Import all models so SQLAlchemy can resolve relationships by name.
# Order matters for dependencies - import base models first

from app.db.base_class import Base
from app.models.customer import Customer
from app.models.segment import Segment
from app.models.email_account import EmailAccountConfig
from app.models.campaign import Campaign
from app.models.communication_log import CommunicationLog
