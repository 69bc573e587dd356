# Transaction input as served by the node REST API (/v1/transactions).
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

GENESIS_TRANSACTION = "genesis_transaction"
USER_TRANSACTION    = "user_transaction"

WRITE_RESOURCE    = "write_resource"
DELETE_RESOURCE   = "delete_resource"
WRITE_TABLE_ITEM  = "write_table_item"
DELETE_TABLE_ITEM = "delete_table_item"

ENTRY_FUNCTION_PAYLOAD = "entry_function_payload"


class EventGuid(BaseModel):
    creation_number: int
    account_address: str


class Event(BaseModel):
    guid: EventGuid
    sequence_number: int
    type: str
    data: Any = None


class WriteSetChange(BaseModel):
    type: str
    address: Optional[str] = None
    # table items
    handle: Optional[str] = None
    key: Optional[str] = None
    value: Optional[str] = None
    # delete_resource carries the type tag here
    resource: Optional[str] = None
    # write_resource: {"type", "data"}; write_table_item: {"key", "key_type", "value", "value_type"}
    data: Optional[Dict[str, Any]] = None

    @property
    def resource_type(self) -> Optional[str]:
        if self.type == WRITE_RESOURCE and self.data:
            return self.data.get("type")
        if self.type == DELETE_RESOURCE:
            return self.resource
        return None

    @property
    def resource_data(self) -> Any:
        if self.type == WRITE_RESOURCE and self.data:
            return self.data.get("data")
        return None


class Transaction(BaseModel):
    type: str
    version: int = Field(ge=0)
    success: bool = True
    changes: List[WriteSetChange] = Field(default_factory=list)
    events: List[Event] = Field(default_factory=list)
    # user transactions only
    sender: Optional[str] = None
    sequence_number: Optional[int] = None
    gas_used: Optional[int] = None
    gas_unit_price: Optional[int] = None
    payload: Optional[Dict[str, Any]] = None
    timestamp: Optional[int] = None

    @property
    def entry_function_id(self) -> Optional[str]:
        if self.payload and self.payload.get("type") == ENTRY_FUNCTION_PAYLOAD:
            return self.payload.get("function")
        return None
