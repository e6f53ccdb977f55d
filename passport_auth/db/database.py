from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from passport_auth.utils.config import settings
import logging

logger = logging.getLogger(__name__)

class MongoDB:
    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

db_manager = MongoDB()

async def connect_to_mongo(uri: str = None):
    '''Connects to MongoDB using the given URI, or the one from settings.'''
    uri = uri or settings.mongo_uri
    logger.info("Connecting to MongoDB...")
    try:
        db_manager.client = AsyncIOMotorClient(uri)
        # The database name is the URI path, e.g. mongodb://host/passport_auth
        db_name = uri.split('/')[-1].split('?')[0]
        if not db_name or ':' in db_name:
            db_name = "passport_auth"
            logger.warning(f"Database name not found in MONGO_URI, using default: {db_name}")
        db_manager.db = db_manager.client[db_name]
        await db_manager.client.admin.command('ping')
        logger.info(f"Connected to MongoDB, database: '{db_name}'")
    except Exception as e:
        logger.error(f"Could not connect to MongoDB: {e}")
        raise

async def close_mongo_connection():
    '''Closes the MongoDB connection.'''
    logger.info("Closing MongoDB connection...")
    if db_manager.client:
        db_manager.client.close()
        db_manager.client = None
        db_manager.db = None
        logger.info("MongoDB connection closed.")

def get_database() -> AsyncIOMotorDatabase:
    '''Returns the database instance.'''
    if db_manager.db is None:
        logger.error("Database instance is not available. Connection might have failed.")
        raise RuntimeError("Database not initialized. Call connect_to_mongo first.")
    return db_manager.db
