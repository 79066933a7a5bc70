# Importing the modules registers every table on Base.metadata
from models import users, product, cart, address, order, log  # noqa: F401
