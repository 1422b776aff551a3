# smartbroker/core/repository.py

import copy
from decimal import Decimal
from typing import Any, Dict, Generic, List, NoReturn, Optional, Tuple, Type, TypeVar

from bson import ObjectId
from loguru import logger
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel
from pymongo.errors import DuplicateKeyError
from pymongo.results import InsertOneResult, UpdateResult

from smartbroker.core.exceptions import BadRequestError, ConflictError
from smartbroker.models.api_common import utcnow

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseRepository(Generic[ModelType]):
    """Classe base para repositórios MongoDB com Motor e Pydantic.

    Todo documento carrega um campo ``version``. Escritas que recebem
    ``expected_version`` só são aplicadas se a versão lida ainda for a atual;
    caso contrário levantam ``ConflictError``.
    """

    model: Type[ModelType]
    collection_name: str
    immutable_fields: Tuple[str, ...] = ("_id", "id", "created_at", "version")

    def __init__(self, db: AsyncIOMotorDatabase):
        if not getattr(self, "collection_name", None):
            raise AttributeError("Repository subclass must define a 'collection_name'")
        if not getattr(self, "model", None) or not issubclass(self.model, BaseModel):
            raise AttributeError("Repository subclass must define a Pydantic 'model'")
        self.db = db
        self.collection = db[self.collection_name]

    @staticmethod
    def _to_objectid(id_value: Any) -> Optional[ObjectId]:
        """Converte input para ObjectId de forma segura, retornando None se inválido."""
        if isinstance(id_value, ObjectId):
            return id_value
        if isinstance(id_value, str) and ObjectId.is_valid(id_value):
            return ObjectId(id_value)
        return None

    @classmethod
    def parse_id(cls, id_value: Any) -> ObjectId:
        """Como _to_objectid, mas levanta BadRequest para ids mal formados."""
        obj_id = cls._to_objectid(id_value)
        if obj_id is None:
            raise BadRequestError(f"Invalid id format: '{id_value}'")
        return obj_id

    def _handle_db_exception(self, e: Exception, operation: str, doc_id: Any = None) -> NoReturn:
        """Loga e levanta exceções de banco de dados padronizadas."""
        context = f"op='{operation}' coll='{self.collection_name}'"
        if doc_id:
            context += f" id='{doc_id}'"
        if isinstance(e, DuplicateKeyError):
            dup_key_info = (e.details or {}).get('keyValue', {})
            logger.warning(f"DB duplicate key during {context}: {dup_key_info}")
            fields = ", ".join(dup_key_info.keys()) or "unique field"
            raise ConflictError(f"Duplicate value for {fields}") from e
        logger.exception(f"DB Error during {context}: {e}")
        raise RuntimeError(f"Database error during operation: {operation}") from e

    def _prepare_data_for_db(self, data: Dict) -> Dict:
        """Converte tipos não suportados pelo BSON (ex: Decimal)."""
        return {k: (float(v) if isinstance(v, Decimal) else v) for k, v in data.items()}

    def _validate(self, document: Optional[Dict]) -> Optional[ModelType]:
        return self.model.model_validate(document) if document else None

    async def get_by_id(self, id: str | ObjectId) -> Optional[ModelType]:
        """Busca um documento pelo seu _id."""
        obj_id = self._to_objectid(id)
        if not obj_id:
            return None
        try:
            document = await self.collection.find_one({"_id": obj_id})
        except Exception as e:
            self._handle_db_exception(e, "get_by_id", obj_id)
        return self._validate(document)

    async def get_by(self, query: Dict[str, Any]) -> Optional[ModelType]:
        """Busca o PRIMEIRO documento que corresponde a um critério."""
        try:
            document = await self.collection.find_one(query)
        except Exception as e:
            self._handle_db_exception(e, "get_by")
        return self._validate(document)

    async def list_by(
        self,
        query: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        limit: int = 100,
        sort: Optional[List[Tuple[str, int]]] = None,
    ) -> List[ModelType]:
        """Lista documentos com base em critérios, paginação e ordenação. limit=0 busca todos."""
        try:
            cursor = self.collection.find(query or {})
            if sort:
                cursor = cursor.sort(sort)
            cursor = cursor.skip(max(0, skip))
            if limit > 0:
                cursor = cursor.limit(limit)
            documents = await cursor.to_list(length=limit if limit > 0 else None)
        except Exception as e:
            self._handle_db_exception(e, "list_by")
        return [self.model.model_validate(doc) for doc in documents]

    async def count(self, query: Optional[Dict[str, Any]] = None) -> int:
        try:
            return await self.collection.count_documents(query or {})
        except Exception as e:
            self._handle_db_exception(e, "count")

    async def create(self, data_in: BaseModel | Dict) -> ModelType:
        """Cria um novo documento (version=1, timestamps)."""
        if isinstance(data_in, BaseModel):
            data = data_in.model_dump(by_alias=False)
        else:
            data = dict(data_in)
        data = self._prepare_data_for_db(data)

        now = utcnow()
        data.setdefault("created_at", now)
        data["updated_at"] = now
        data["version"] = 1
        data.pop("_id", None)
        data.pop("id", None)

        try:
            result: InsertOneResult = await self.collection.insert_one(data)
        except Exception as e:
            self._handle_db_exception(e, "create")

        created = await self.get_by_id(result.inserted_id)
        if created is None:
            logger.critical(f"Failed to retrieve document right after insertion! ID: {result.inserted_id}, Collection: {self.collection_name}")
            raise RuntimeError("Failed to retrieve document after creation.")
        return created

    async def apply(
        self,
        id: str | ObjectId,
        operations: Dict[str, Dict[str, Any]],
        expected_version: Optional[int] = None,
        guard: Optional[Dict[str, Any]] = None,
    ) -> Optional[ModelType]:
        """Aplica operadores Mongo ($set, $push, $inc...) incrementando a versão.

        Retorna None se o documento não existir. Com ``expected_version``, uma
        versão divergente levanta ConflictError. ``guard`` acrescenta condições
        ao filtro; um documento existente que não as satisfaz também é ConflictError.
        """
        obj_id = self._to_objectid(id)
        if not obj_id:
            return None

        ops = copy.deepcopy(operations)
        ops.setdefault("$set", {})["updated_at"] = utcnow()
        ops.setdefault("$inc", {})["version"] = 1

        query: Dict[str, Any] = {"_id": obj_id}
        if expected_version is not None:
            query["version"] = expected_version
        if guard:
            query.update(guard)

        try:
            result: UpdateResult = await self.collection.update_one(query, ops)
        except Exception as e:
            self._handle_db_exception(e, "apply", obj_id)

        if result.matched_count == 0:
            if (expected_version is not None or guard) and await self.collection.find_one({"_id": obj_id}, {"_id": 1}):
                logger.warning(
                    f"Conflict on {self.collection_name}/{obj_id}: expected version {expected_version}, guard {guard}"
                )
                raise ConflictError("The resource was modified concurrently. Reload it and try again.")
            logger.warning(f"Document not found for update: ID {obj_id}, Collection: {self.collection_name}")
            return None
        return await self.get_by_id(obj_id)

    async def update(
        self,
        id: str | ObjectId,
        data_in: BaseModel | Dict,
        expected_version: Optional[int] = None,
    ) -> Optional[ModelType]:
        """Atualiza campos com $set (apenas campos definidos em modelos Pydantic)."""
        if isinstance(data_in, BaseModel):
            data = data_in.model_dump(exclude_unset=True, by_alias=False)
        else:
            data = dict(data_in)
        data = self._prepare_data_for_db(data)
        for field in self.immutable_fields:
            data.pop(field, None)

        if not data:
            logger.debug(f"Update called for ID {id} with no updatable data.")
            return await self.get_by_id(id)
        return await self.apply(id, {"$set": data}, expected_version=expected_version)

    async def set_active_status(
        self, id: str | ObjectId, is_active: bool, expected_version: Optional[int] = None
    ) -> Optional[ModelType]:
        """Deleção lógica (requer campo 'is_active')."""
        logger.info(f"Setting active status to {is_active} for ID {id} in {self.collection_name}")
        return await self.update(id, {"is_active": is_active}, expected_version=expected_version)
