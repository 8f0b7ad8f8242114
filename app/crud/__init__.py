# app/crud/__init__.py

from .crud_customer import customer
from .crud_segment import segment
from .crud_email_account import email_account
from .crud_campaign import campaign
from .crud_communication_log import communication_log
