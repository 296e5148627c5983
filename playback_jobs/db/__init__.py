from .connection import (
    get_mongodb_client,
    get_database,
    close_connection,
    collection_name,
    get_collection,
)
