from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorCollection
from typing import Any, Dict, Mapping, Optional
from passport_auth.db.database import get_database
import logging

logger = logging.getLogger(__name__)


class UserDocument(dict):
    '''
    A user stored in MongoDB. Behaves as a plain dict keyed by the configured
    field names; `id` mirrors the document's `_id` as a string.
    '''

    def __init__(self, collection: AsyncIOMotorCollection, data: Optional[Mapping[str, Any]] = None):
        super().__init__(data or {})
        self._collection = collection
        if "_id" in self:
            self["id"] = str(self["_id"])

    def _document(self) -> Dict[str, Any]:
        return {k: v for k, v in self.items() if k not in ("id", "_id")}

    async def save(self) -> "UserDocument":
        if "_id" in self:
            await self._collection.replace_one({"_id": self["_id"]}, self._document())
        else:
            result = await self._collection.insert_one(self._document())
            self["_id"] = result.inserted_id
            self["id"] = str(result.inserted_id)
            logger.info(f"Inserted user document {self['id']}")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self.items() if k != "_id"}


class MongoUsers:
    '''Users collaborator backed by a Motor collection.'''

    def __init__(self, collection: Optional[AsyncIOMotorCollection] = None, collection_name: str = "users"):
        self._collection = collection
        self.collection_name = collection_name

    @property
    def collection(self) -> AsyncIOMotorCollection:
        # Resolved lazily so the app can be built before Mongo connects
        if self._collection is None:
            return get_database()[self.collection_name]
        return self._collection

    def _translate(self, query: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        translated = dict(query)
        if "id" in translated:
            try:
                translated["_id"] = ObjectId(str(translated.pop("id")))
            except InvalidId:
                return None
        return translated

    async def find_one(self, query: Mapping[str, Any]) -> Optional[UserDocument]:
        translated = self._translate(query)
        if translated is None:
            return None
        doc = await self.collection.find_one(translated)
        if doc is None:
            return None
        return UserDocument(self.collection, doc)

    def new(self, data: Mapping[str, Any]) -> UserDocument:
        return UserDocument(self.collection, data)

    async def create_index(self, field: str) -> None:
        '''Unique sparse index, e.g. on a provider profile ID field.'''
        await self.collection.create_index(field, unique=True, sparse=True)
