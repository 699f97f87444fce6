from typing import Annotated, Optional

from pydantic import BaseModel, Field

Latitude = Annotated[float, Field(ge=-90, le=90, description="Degrees north")]
Longitude = Annotated[float, Field(ge=-180, le=180, description="Degrees east")]


class Coordinates(BaseModel):
    latitude: Latitude
    longitude: Longitude
    accuracy: Optional[float] = Field(default=None, ge=0, description="Metres")

    model_config = {"extra": "ignore"}

    def to_point(self) -> dict:
        """GeoJSON point; Mongo wants [lng, lat]."""
        return {"type": "Point", "coordinates": [self.longitude, self.latitude]}
