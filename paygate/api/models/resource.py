# paygate/api/models/resource.py
from pydantic import AliasChoices, BaseModel, Field
from typing import List, Optional, Union

from paygate.registry.base import ProtectedResource


class ResourceCreateRequest(BaseModel):
    """
    Body of POST /resources.

    Fields are optional at this layer so that missing values are reported by
    the registry as a 400 validation error. `website` and `walletAddress` are
    accepted as older spellings of `id` and `payoutAddress`.
    """
    id: Optional[str] = Field(None, validation_alias=AliasChoices("id", "website"))
    payoutAddress: Optional[str] = Field(None, validation_alias=AliasChoices("payoutAddress", "walletAddress"))
    price: Optional[Union[str, int, float]] = None
    network: Optional[str] = None
    description: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "id": "https://example.com",
                "payoutAddress": "0x376b7271dD22D14D82Ef594324ea14e7670ed5b2",
                "price": "100",
                "network": "polygon-amoy",
                "description": "Premium API access",
            }
        }


class ResourceUpdateRequest(BaseModel):
    """Body of PUT /resources/{id}; only provided fields change."""
    payoutAddress: Optional[str] = Field(None, validation_alias=AliasChoices("payoutAddress", "walletAddress"))
    price: Optional[Union[str, int, float]] = None
    network: Optional[str] = None
    description: Optional[str] = None
    enabled: Optional[bool] = None


class ResourceResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: ProtectedResource


class ResourceListResponse(BaseModel):
    success: bool = True
    data: List[ProtectedResource]
    count: int


class MessageResponse(BaseModel):
    success: bool = True
    message: str
