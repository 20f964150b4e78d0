"""
Persistence layer: a single DBStorage instance shared by the API.
"""
from models.db_storage import DBStorage

storage = DBStorage()
storage.reload()
