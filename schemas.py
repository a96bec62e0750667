"""
Database Schemas for the Ship Rating App

Each Pydantic model represents a MongoDB collection.
Collection name is lowercase of the class name.
- User -> "user"
- Ship -> "ship"
- Rating -> "rating"
"""

from pydantic import BaseModel, Field, EmailStr
from typing import Dict, Optional
from datetime import datetime

from catalog import CabinType


class User(BaseModel):
    name: str = Field(..., description="Full name")
    display_name: Optional[str] = Field(None, description="Call sign shown on ratings")
    email: EmailStr = Field(..., description="Unique email address")
    password_hash: str = Field(..., description="Hashed password")
    role: str = Field("pilot", description="Role: pilot, admin")
    is_active: bool = Field(True, description="Whether user is active")


class ShipInfo(BaseModel):
    crew_nationality: Optional[str] = Field(None, description="Crew nationality")
    cabin_count: Optional[int] = Field(None, ge=0, description="Number of cabins")
    has_minibar: Optional[bool] = Field(None, description="Cabin has a minibar")
    has_sink: Optional[bool] = Field(None, description="Cabin has a sink")


class Ship(BaseModel):
    name: str = Field(..., description="Ship name, trimmed")
    imo: Optional[str] = Field(None, description="IMO number; omitted when unknown")
    info: ShipInfo = Field(default_factory=ShipInfo, description="Merged ship details")
    means: Dict[str, float] = Field(default_factory=dict, description="Aggregate key -> mean score")


class CriterionEntry(BaseModel):
    score: float = Field(0.0, ge=0, le=5, description="1-5, or 0 when unrated")
    note: str = Field("", description="Free-text note")


class Rating(BaseModel):
    ship_id: str = Field(..., description="Parent ship _id (string)")
    user_id: str = Field(..., description="Submitting user _id (string)")
    user_display_name: str = Field(..., description="Display name captured at submission")
    disembarkation_date: Optional[datetime] = Field(None, description="Date the pilot left the ship")
    cabin_type: CabinType = Field(..., description="Cabin the pilot used")
    general_observation: str = Field("", description="Free-text observation")
    items: Dict[str, CriterionEntry] = Field(..., description="Criterion name -> score and note")
    ship_info: ShipInfo = Field(default_factory=ShipInfo, description="Ship details as seen by the submitter")
    created_at: Optional[datetime] = None
